"""
Esquemas del motor de precios.

Todos los montos son Decimal; el motor nunca toca la base de datos, recibe
un PricingInput armado por PricingService.
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List, Optional

from app.modules.members.models import MemberCategory
from app.modules.tenants.models import BusinessModel
from app.modules.tenants.schemas import TierSettings


class TenantPricingContext(BaseModel):
    """Contexto de precios del tenant (tasa de impuesto ya validada)"""
    business_model: BusinessModel
    tier_settings: TierSettings = Field(default_factory=TierSettings)
    base_rate: Decimal = Field(..., ge=0, description="Tarifa por hora")
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=1)
    tax_name: str = "IVA"
    currency_code: str = "CLP"
    currency_symbol: str = "$"


class MemberPricingContext(BaseModel):
    category: MemberCategory
    subscription_status: Optional[str] = None
    discount: Decimal = Field(Decimal("0"), description="% de descuento guardado en el socio")


class PricingInput(BaseModel):
    tenant: TenantPricingContext
    member: Optional[MemberPricingContext] = None
    duration_minutes: Decimal = Field(..., ge=0)
    consumption_total: Decimal = Field(Decimal("0"), ge=0, description="Total de la barra, nunca se descuenta")


class PricingResult(BaseModel):
    time_charge: Decimal
    subtotal: Decimal           # Total antes de impuestos
    discount_amount: Decimal    # Monto del descuento aplicado
    discount_percentage: Decimal
    tax_amount: Decimal
    total: Decimal              # Total final

    applied_discount: bool
    discount_reason: Optional[str] = None
    member_category: Optional[MemberCategory] = None
    business_model: BusinessModel

    warnings: List[str] = Field(default_factory=list)


class DiscountValidation(BaseModel):
    valid: bool
    reason: Optional[str] = None


class SplitPart(BaseModel):
    part_number: int
    amount: Decimal
    description: Optional[str] = None


class SplitValidationResult(BaseModel):
    valid: bool
    original_total: Decimal
    split_total: Decimal
    difference: Decimal
    tolerance: Decimal
    violations: List[str] = Field(default_factory=list)


class SessionPricingResult(BaseModel):
    """Resultado de re-cotizar una sesión cerrada antes del cobro"""
    success: bool
    error: Optional[str] = None
    pricing: Optional[PricingResult] = None
    discount_validation: Optional[DiscountValidation] = None
