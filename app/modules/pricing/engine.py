"""
Motor de cobro consciente del modelo de negocio y la categoría del socio

Soporta:
- CLUB_SOCIOS: descuento solo para SOCIO con cuota ACTIVE
- COMERCIAL: descuentos VIP/SOCIO sin cuota mensual
- Impuesto del tenant (IVA/IGV) sobre el subtotal
- Redondeo según currency_code (CLP sin decimales, USD con decimales)

Función pura: mismos datos de entrada, mismo resultado.
"""
from decimal import Decimal

from app.common.money import round_by_currency, to_decimal
from app.modules.pricing.rules import resolve_discount
from app.modules.pricing.schemas import PricingInput, PricingResult


MINUTES_PER_HOUR = Decimal("60")
HUNDRED = Decimal("100")


def calculate_total(data: PricingInput) -> PricingResult:
    """
    Calcular el cobro de una sesión de mesa.

    El descuento se aplica solo al tiempo, nunca al consumo de la barra.
    Subtotal, descuento, impuesto y total se redondean por separado, por lo
    que neto + impuesto puede diferir del total en una unidad de redondeo.
    """
    tenant = data.tenant
    currency = tenant.currency_code

    # 1. Tiempo base
    time_charge = (to_decimal(data.duration_minutes) / MINUTES_PER_HOUR) * to_decimal(tenant.base_rate)

    # 2. Descuento según businessModel
    resolution = resolve_discount(tenant, data.member)
    percentage = resolution.percentage

    # 3. Descuento solo sobre el tiempo
    discounted_time = time_charge * (1 - percentage / HUNDRED)
    discount_amount = time_charge - discounted_time

    # 4. Subtotal (tiempo con descuento + consumo)
    subtotal = discounted_time + to_decimal(data.consumption_total)

    # 5. Impuestos
    tax_amount = subtotal * to_decimal(tenant.tax_rate)

    # 6. Total final
    total = subtotal + tax_amount

    return PricingResult(
        time_charge=round_by_currency(time_charge, currency),
        subtotal=round_by_currency(subtotal, currency),
        discount_amount=round_by_currency(discount_amount, currency),
        discount_percentage=percentage,
        tax_amount=round_by_currency(tax_amount, currency),
        total=round_by_currency(total, currency),
        applied_discount=percentage > 0,
        discount_reason=resolution.reason,
        member_category=data.member.category if data.member else None,
        business_model=tenant.business_model,
        warnings=resolution.warnings
    )
