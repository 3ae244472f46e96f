from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from typing import Optional
from uuid import UUID
import logging

from app.common.exceptions import TenantNotFoundError
from app.common.money import money_sum, to_decimal
from app.modules.audit.schemas import ThreatLevel
from app.modules.audit.service import AuditLogger
from app.modules.sessions.models import UsageLog
from app.modules.taxes.service import TaxConfigService
from app.modules.tenants.models import Tenant
from app.modules.tenants.service import load_tier_settings
from app.modules.pricing.engine import calculate_total
from app.modules.pricing.schemas import (
    MemberPricingContext, PricingInput, PricingResult, SessionPricingResult, TenantPricingContext
)
from app.modules.pricing.validators import validate_discount_integrity

logger = logging.getLogger(__name__)


class PricingService:
    """
    Puente entre las filas persistidas y el motor de precios puro.

    Arma el PricingInput desde Tenant/Member/UsageLog, registra las
    advertencias del motor en la bitácora y detecta descuentos manipulados.
    """

    def __init__(self, db: Session, audit: AuditLogger):
        self.db = db
        self.audit = audit
        self.taxes = TaxConfigService(db, audit)

    def build_tenant_context(self, tenant: Tenant) -> TenantPricingContext:
        tax = self.taxes.resolve(tenant)
        return TenantPricingContext(
            business_model=tenant.business_model,
            tier_settings=load_tier_settings(tenant.tier_settings),
            base_rate=to_decimal(tenant.base_rate),
            tax_rate=tax.rate,
            tax_name=tax.name,
            currency_code=tenant.currency_code,
            currency_symbol=tenant.currency_symbol
        )

    def build_input(self, usage_log: UsageLog, tenant: Optional[Tenant] = None) -> PricingInput:
        tenant = tenant or self.db.get(Tenant, usage_log.tenant_id)
        if not tenant:
            raise TenantNotFoundError(f"Tenant {usage_log.tenant_id} no encontrado")

        member = None
        if usage_log.member:
            member = MemberPricingContext(
                category=usage_log.member.category,
                subscription_status=usage_log.member.subscription_status,
                discount=to_decimal(usage_log.member.discount)
            )

        return PricingInput(
            tenant=self.build_tenant_context(tenant),
            member=member,
            duration_minutes=usage_log.duration_minutes or 0,
            consumption_total=money_sum(item.total_price for item in usage_log.items)
        )

    def price_session(self, usage_log: UsageLog, tenant: Optional[Tenant] = None) -> PricingResult:
        return calculate_total(self.build_input(usage_log, tenant))

    def process_payment(
        self,
        tenant_id: UUID,
        session_id: UUID,
        user_id: Optional[str] = None
    ) -> SessionPricingResult:
        """
        Re-cotizar una sesión cerrada y guardar el cobro definitivo.

        - Advertencias del motor (ej: SOCIO con cuota vencida) → evento LOW
        - Descuento previo que no coincide con el calculado → evento CRITICAL
        """
        usage_log = self.db.query(UsageLog).options(
            selectinload(UsageLog.items),
            selectinload(UsageLog.member)
        ).filter(
            UsageLog.id == session_id,
            UsageLog.tenant_id == tenant_id
        ).first()

        if not usage_log:
            return SessionPricingResult(success=False, error="Sesión no encontrada")
        if usage_log.ended_at is None:
            return SessionPricingResult(success=False, error="La sesión aún no está cerrada")
        if usage_log.daily_balance_id is not None:
            return SessionPricingResult(success=False, error="La sesión ya fue consolidada en un cierre Z")

        try:
            pricing = self.price_session(usage_log)

            if pricing.warnings:
                self.audit.security_event(
                    type="MEMBERSHIP_STATUS_WARNING",
                    threat_level=ThreatLevel.LOW,
                    message="; ".join(pricing.warnings),
                    details={
                        "usageLogId": str(usage_log.id),
                        "memberId": str(usage_log.member_id) if usage_log.member_id else None,
                        "memberCategory": pricing.member_category,
                        "membershipStatus": usage_log.member.subscription_status if usage_log.member else None
                    },
                    tenant_id=tenant_id
                )

            validation = None
            applied = to_decimal(usage_log.discount_applied)
            if applied > 0:
                validation = validate_discount_integrity(applied, pricing)
                if not validation.valid:
                    self.audit.security_event(
                        type="CRITICAL_PRICE_MISMATCH",
                        threat_level=ThreatLevel.CRITICAL,
                        message=f"Discount integrity violation: {validation.reason}",
                        details={
                            "usageLogId": str(usage_log.id),
                            "appliedDiscount": applied,
                            "expectedDiscount": pricing.discount_amount
                        },
                        tenant_id=tenant_id,
                        user_id=user_id
                    )

            usage_log.amount_charged = pricing.total
            usage_log.discount_applied = pricing.discount_amount
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error processing payment for session {session_id}: {str(e)}")
            raise

        logger.info(f"Session {session_id} priced at {pricing.total} {pricing.business_model.value}")
        return SessionPricingResult(success=True, pricing=pricing, discount_validation=validation)
