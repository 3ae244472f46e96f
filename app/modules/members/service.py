from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID
import logging

from app.core.config import settings
from app.common.dates import as_utc, utc_now
from app.common.exceptions import MemberNotFoundError
from app.database.database import get_tenant_query
from app.modules.audit.schemas import ThreatLevel
from app.modules.audit.service import AuditLogger
from app.modules.members.models import Member, MemberCategory, SubscriptionStatus, TierChange
from app.modules.members.schemas import (
    MemberOut, SuspiciousActor, TierAuditResult, TierChangeOut, TierChangeRequest,
    TierChangeResult, VipCandidateList
)
from app.modules.tenants.service import TenantService

logger = logging.getLogger(__name__)


def is_expiry_reason(reason: str, keywords: Optional[List[str]] = None) -> bool:
    """El motivo menciona un vencimiento de cuota (sin distinguir mayúsculas)"""
    keywords = keywords if keywords is not None else settings.TIER_DOWNGRADE_EXPIRY_KEYWORDS
    text = (reason or "").lower()
    return any(keyword.lower() in text for keyword in keywords)


class MemberTierService:
    """
    Cambios de categoría con trail de auditoría.

    Reglas de negocio:
    - SOCIO → GENERAL solo con un motivo de vencimiento; si no, evento MEDIUM
    - Cada cambio deja una fila TierChange inmutable
    - Subir a SOCIO reactiva la cuota (ACTIVE)
    """

    def __init__(self, db: Session, audit: AuditLogger):
        self.db = db
        self.audit = audit

    def get_member(self, tenant_id: UUID, member_id: UUID) -> Member:
        member = get_tenant_query(self.db, Member, tenant_id).filter(Member.id == member_id).first()
        if not member:
            raise MemberNotFoundError(f"Socio {member_id} no encontrado")
        return member

    def change_tier(self, tenant_id: UUID, member_id: UUID, data: TierChangeRequest) -> TierChangeResult:
        member = get_tenant_query(self.db, Member, tenant_id).filter(Member.id == member_id).first()
        if not member:
            return TierChangeResult(success=False, error="Socio no encontrado")

        current = member.category
        if current == data.new_category:
            return TierChangeResult(success=False, error=f"El socio ya es {current.value}")

        if (
            current == MemberCategory.SOCIO
            and data.new_category == MemberCategory.GENERAL
            and not is_expiry_reason(data.reason)
        ):
            self.audit.security_event(
                type="SUSPICIOUS_TIER_DOWNGRADE",
                threat_level=ThreatLevel.MEDIUM,
                message="Attempt to downgrade SOCIO to GENERAL without proper reason",
                details={
                    "memberId": str(member.id),
                    "currentCategory": current.value,
                    "newCategory": data.new_category.value
                },
                tenant_id=tenant_id,
                user_id=data.changed_by
            )
            self.db.commit()
            return TierChangeResult(
                success=False,
                error='El downgrade requiere un motivo que mencione el vencimiento (ej: "vencimiento de cuota")'
            )

        try:
            change = TierChange(
                tenant_id=tenant_id,
                member_id=member.id,
                from_category=current,
                to_category=data.new_category,
                reason=data.reason,
                changed_by=data.changed_by
            )
            self.db.add(change)

            member.category = data.new_category
            if data.new_category == MemberCategory.SOCIO:
                member.subscription_status = SubscriptionStatus.ACTIVE.value

            self.audit.security_event(
                type="MEMBER_TIER_CHANGED",
                threat_level=ThreatLevel.LOW,
                message=f"Member {member.name} tier changed from {current.value} to {data.new_category.value}",
                details={"memberId": str(member.id), "reason": data.reason, "changedBy": data.changed_by},
                tenant_id=tenant_id,
                user_id=data.changed_by
            )
            self.db.commit()
            self.db.refresh(change)

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error changing tier for member {member_id}: {str(e)}")
            raise

        logger.info(f"Member {member_id} tier {current.value} -> {data.new_category.value}")
        return TierChangeResult(success=True, tier_change_id=change.id)

    def suggest_vip_upgrades(self, tenant_id: UUID) -> VipCandidateList:
        """Clientes GENERAL cuyo gasto acumulado alcanza el umbral VIP del tenant"""
        threshold = TenantService(self.db).get_tier_settings(tenant_id).vip_threshold

        candidates = self.db.query(Member).filter(
            Member.tenant_id == tenant_id,
            Member.category == MemberCategory.GENERAL,
            Member.amount_spent >= threshold
        ).order_by(Member.amount_spent.desc()).all()

        return VipCandidateList(
            threshold=threshold,
            candidates=[MemberOut.model_validate(m) for m in candidates]
        )

    def get_tier_history(self, tenant_id: UUID, member_id: UUID) -> List[TierChangeOut]:
        self.get_member(tenant_id, member_id)
        history = self.db.query(TierChange).filter(
            TierChange.tenant_id == tenant_id,
            TierChange.member_id == member_id
        ).order_by(TierChange.created_at.desc(), TierChange.id.desc()).all()
        return [TierChangeOut.model_validate(h) for h in history]

    def audit_tier_upgrades(self, tenant_id: UUID, now: Optional[datetime] = None) -> TierAuditResult:
        """Detecta usuarios con demasiados upgrades a VIP en las últimas 24 horas"""
        window_start = (as_utc(now) or utc_now()) - timedelta(days=1)
        limit = settings.SUSPICIOUS_VIP_UPGRADES_PER_DAY

        changed_by = self.db.query(TierChange.changed_by).filter(
            TierChange.tenant_id == tenant_id,
            TierChange.to_category == MemberCategory.VIP,
            TierChange.created_at >= window_start
        ).all()

        counts = Counter(row[0] for row in changed_by)
        suspicious = [
            SuspiciousActor(changed_by=actor, upgrades=count)
            for actor, count in counts.most_common()
            if count > limit
        ]

        if suspicious:
            self.audit.security_event(
                type="EXCESSIVE_TIER_UPGRADES",
                threat_level=ThreatLevel.HIGH,
                message="Suspicious tier upgrade activity detected",
                details={"suspicious": [s.model_dump() for s in suspicious], "limit": limit},
                tenant_id=tenant_id
            )
            self.db.commit()

        return TierAuditResult(window_start=window_start, suspicious=suspicious)
