"""
Helper para desglose de impuestos

Los precios del club (tarifa por hora, productos de la barra) se ingresan
como precios al público, IVA incluido. Este módulo separa el componente de
impuesto para el Z-Report y para la emisión de DTE.

Ejemplo con IVA 19%:
    gross_amount = 7.140 (precio al público)
    net_amount   = 6.000 (neto contable)
    tax_amount   = 1.140 (IVA a declarar)
"""

from decimal import Decimal
from typing import Optional

from app.core.config import settings
from app.common.money import Number, round_2, to_decimal
from app.modules.taxes.schemas import TaxBreakdown, TaxIdentityCheck


def calculate_tax_breakdown(gross_amount: Number, tax_rate: Number) -> TaxBreakdown:
    """
    Desglosar un monto bruto en neto + impuesto

    Args:
        gross_amount: Precio al público (IVA incluido), lo que paga el cliente
        tax_rate: Tasa decimal (ej. 0.19 para 19%)

    Returns:
        TaxBreakdown con neto e impuesto redondeados a 2 decimales.
        Con tasa <= 0 el monto se considera exento: neto = bruto, impuesto = 0.
    """
    gross = to_decimal(gross_amount)
    rate = to_decimal(tax_rate)

    if rate <= 0:
        return TaxBreakdown(net_amount=gross, tax_amount=Decimal("0"), gross_amount=gross)

    net = gross / (1 + rate)
    tax = gross - net

    return TaxBreakdown(
        net_amount=round_2(net),
        tax_amount=round_2(tax),
        gross_amount=round_2(gross)
    )


def validate_tax_identity(
    net_amount: Number,
    tax_amount: Number,
    total_amount: Number,
    tolerance: Optional[Number] = None
) -> TaxIdentityCheck:
    """
    Verificar que neto + impuesto == total dentro de la tolerancia de redondeo.

    Un desglose que no cuadra bloquea la emisión del documento tributario;
    nunca se corrige en silencio.
    """
    tolerance = to_decimal(tolerance if tolerance is not None else settings.TAX_IDENTITY_TOLERANCE)
    net = to_decimal(net_amount)
    tax = to_decimal(tax_amount)
    total = to_decimal(total_amount)

    difference = abs((net + tax) - total)
    if difference > tolerance:
        return TaxIdentityCheck(
            valid=False,
            difference=difference,
            reason=(
                f"El desglose de impuestos no cuadra con el total: "
                f"neto {net} + impuesto {tax} = {net + tax}, se esperaba {total}"
            )
        )

    return TaxIdentityCheck(valid=True, difference=difference)
