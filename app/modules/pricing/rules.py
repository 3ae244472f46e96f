"""
Tabla de reglas de descuento: modelo de negocio × categoría → origen del %.

Cada ruta de fallback es una regla con nombre; no hay cadenas implícitas.

| Modelo      | GENERAL | VIP                      | SOCIO                       |
|-------------|---------|--------------------------|-----------------------------|
| CLUB_SOCIOS | sin     | sin                      | % del socio si cuota ACTIVE |
| COMERCIAL   | sin     | tier vip → % del socio   | tier socio → % del socio    |
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
import enum

from app.common.money import to_decimal
from app.modules.members.models import MemberCategory, SubscriptionStatus
from app.modules.tenants.models import BusinessModel
from app.modules.pricing.schemas import MemberPricingContext, TenantPricingContext


class DiscountSource(str, enum.Enum):
    NONE = "NONE"
    MEMBER_IF_ACTIVE = "MEMBER_IF_ACTIVE"  # % del socio, solo con cuota al día
    TIER_VIP = "TIER_VIP"                  # tier_settings.vip_discount, si no % del socio
    TIER_SOCIO = "TIER_SOCIO"              # tier_settings.socio_discount, si no % del socio


@dataclass(frozen=True)
class DiscountRule:
    source: DiscountSource
    reason: Optional[str] = None
    inactive_reason: Optional[str] = None


@dataclass
class DiscountResolution:
    percentage: Decimal
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


NO_DISCOUNT = DiscountRule(DiscountSource.NONE)

DISCOUNT_RULES: Dict[Tuple[BusinessModel, MemberCategory], DiscountRule] = {
    (BusinessModel.CLUB_SOCIOS, MemberCategory.GENERAL): NO_DISCOUNT,
    (BusinessModel.CLUB_SOCIOS, MemberCategory.VIP): NO_DISCOUNT,
    (BusinessModel.CLUB_SOCIOS, MemberCategory.SOCIO): DiscountRule(
        DiscountSource.MEMBER_IF_ACTIVE,
        reason="SOCIO membership active",
        inactive_reason="SOCIO membership expired"
    ),
    (BusinessModel.COMERCIAL, MemberCategory.GENERAL): NO_DISCOUNT,
    (BusinessModel.COMERCIAL, MemberCategory.VIP): DiscountRule(
        DiscountSource.TIER_VIP, reason="VIP customer discount"
    ),
    (BusinessModel.COMERCIAL, MemberCategory.SOCIO): DiscountRule(
        DiscountSource.TIER_SOCIO, reason="SOCIO customer discount"
    ),
}

MAX_PERCENTAGE = Decimal("100")


def _tier_or_member(tier_value: Optional[Decimal], member: MemberPricingContext) -> Decimal:
    # 0 en tier_settings significa "no configurado"
    if tier_value:
        return to_decimal(tier_value)
    return to_decimal(member.discount)


def resolve_discount(
    tenant: TenantPricingContext,
    member: Optional[MemberPricingContext]
) -> DiscountResolution:
    """Determinar el % de descuento sobre el tiempo según businessModel y categoría"""
    if member is None:
        return DiscountResolution(percentage=Decimal("0"))

    rule = DISCOUNT_RULES.get((tenant.business_model, member.category), NO_DISCOUNT)
    resolution = DiscountResolution(percentage=Decimal("0"), reason=rule.reason)

    if rule.source == DiscountSource.NONE:
        return resolution

    if rule.source == DiscountSource.MEMBER_IF_ACTIVE:
        if member.subscription_status == SubscriptionStatus.ACTIVE.value:
            resolution.percentage = to_decimal(member.discount)
        else:
            resolution.reason = rule.inactive_reason
            resolution.warnings.append(
                f"SOCIO membership NOT ACTIVE (status: {member.subscription_status or 'undefined'}). "
                f"Applying GENERAL rate."
            )
    elif rule.source == DiscountSource.TIER_VIP:
        resolution.percentage = _tier_or_member(tenant.tier_settings.vip_discount, member)
    elif rule.source == DiscountSource.TIER_SOCIO:
        resolution.percentage = _tier_or_member(tenant.tier_settings.socio_discount, member)

    if resolution.percentage < 0 or resolution.percentage > MAX_PERCENTAGE:
        clamped = min(max(resolution.percentage, Decimal("0")), MAX_PERCENTAGE)
        resolution.warnings.append(
            f"Discount {resolution.percentage}% out of range, clamped to {clamped}%."
        )
        resolution.percentage = clamped

    return resolution
