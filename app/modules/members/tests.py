"""
Tests para cambios de categoría de socios
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy.orm import Session

from app.common.exceptions import ImmutableRecordError, MemberNotFoundError
from app.modules.audit.schemas import AuditSeverity
from app.modules.members.models import Member, MemberCategory, TierChange
from app.modules.members.schemas import TierChangeRequest
from app.modules.members.service import MemberTierService, is_expiry_reason


# ===== FIXTURES =====

@pytest.fixture
def tiers(db_session: Session, audit):
    return MemberTierService(db_session, audit)


def add_member(db: Session, tenant, category=MemberCategory.GENERAL, spent="0", name="Cliente", status=None):
    member = Member(
        tenant_id=tenant.id, name=name, category=category,
        subscription_status=status, amount_spent=Decimal(spent)
    )
    db.add(member)
    db.commit()
    return member


# ===== TESTS =====

class TestExpiryReason:

    @pytest.mark.parametrize("reason", [
        "vencimiento de cuota", "Cuota con VENCIMIENTO en marzo", "membership expired", "Expiró el plan",
    ])
    def test_expiry_reasons(self, reason):
        assert is_expiry_reason(reason) is True

    def test_other_reasons(self):
        assert is_expiry_reason("mal comportamiento") is False
        assert is_expiry_reason("") is False


class TestChangeTier:

    def test_upgrade_to_socio_activates_subscription(self, db_session: Session, tiers, sample_tenant, memory_audit_sink):
        member = add_member(db_session, sample_tenant)

        result = tiers.change_tier(sample_tenant.id, member.id, TierChangeRequest(
            new_category=MemberCategory.SOCIO, reason="Pagó inscripción", changed_by="admin"
        ))

        assert result.success is True
        db_session.refresh(member)
        assert member.category == MemberCategory.SOCIO
        assert member.subscription_status == "ACTIVE"

        change = db_session.get(TierChange, result.tier_change_id)
        assert change.from_category == MemberCategory.GENERAL
        assert change.to_category == MemberCategory.SOCIO
        assert memory_audit_sink.of_type("MEMBER_TIER_CHANGED")[0].details["threatLevel"] == "LOW"

    def test_socio_downgrade_requires_expiry_reason(self, db_session: Session, tiers, sample_tenant, memory_audit_sink):
        member = add_member(db_session, sample_tenant, MemberCategory.SOCIO, status="ACTIVE")

        result = tiers.change_tier(sample_tenant.id, member.id, TierChangeRequest(
            new_category=MemberCategory.GENERAL, reason="me cae mal", changed_by="cajero"
        ))

        assert result.success is False
        db_session.refresh(member)
        assert member.category == MemberCategory.SOCIO
        assert db_session.query(TierChange).count() == 0

        events = memory_audit_sink.of_type("SUSPICIOUS_TIER_DOWNGRADE")
        assert len(events) == 1
        assert events[0].details["threatLevel"] == "MEDIUM"
        assert events[0].severity == AuditSeverity.ERROR

    def test_socio_downgrade_with_expiry(self, db_session: Session, tiers, sample_tenant):
        member = add_member(db_session, sample_tenant, MemberCategory.SOCIO, status="IN_ARREARS")

        result = tiers.change_tier(sample_tenant.id, member.id, TierChangeRequest(
            new_category=MemberCategory.GENERAL, reason="Vencimiento de cuota", changed_by="admin"
        ))

        assert result.success is True
        db_session.refresh(member)
        assert member.category == MemberCategory.GENERAL

    def test_same_category_is_rejected(self, tiers, db_session: Session, sample_tenant):
        member = add_member(db_session, sample_tenant, MemberCategory.VIP)

        result = tiers.change_tier(sample_tenant.id, member.id, TierChangeRequest(
            new_category=MemberCategory.VIP, reason="sin cambio", changed_by="admin"
        ))

        assert result.success is False

    def test_tier_change_rows_are_append_only(self, db_session: Session, tiers, sample_tenant):
        member = add_member(db_session, sample_tenant)
        result = tiers.change_tier(sample_tenant.id, member.id, TierChangeRequest(
            new_category=MemberCategory.VIP, reason="Cliente frecuente", changed_by="admin"
        ))

        change = db_session.get(TierChange, result.tier_change_id)
        change.reason = "editado"
        with pytest.raises(ImmutableRecordError):
            db_session.commit()
        db_session.rollback()


class TestTierQueries:

    def test_suggest_vip_upgrades(self, db_session: Session, tiers, comercial_tenant):
        add_member(db_session, comercial_tenant, spent="39999", name="Casi")
        add_member(db_session, comercial_tenant, spent="40000", name="Justo")
        add_member(db_session, comercial_tenant, spent="90000", name="Top")
        add_member(db_session, comercial_tenant, MemberCategory.VIP, spent="200000", name="Ya VIP")

        result = tiers.suggest_vip_upgrades(comercial_tenant.id)

        assert result.threshold == Decimal("40000")
        assert [m.name for m in result.candidates] == ["Top", "Justo"]

    def test_default_threshold(self, db_session: Session, tiers, sample_tenant):
        add_member(db_session, sample_tenant, spent="49999")
        add_member(db_session, sample_tenant, spent="50000", name="Justo")

        result = tiers.suggest_vip_upgrades(sample_tenant.id)

        assert result.threshold == Decimal("50000")
        assert [m.name for m in result.candidates] == ["Justo"]

    def test_history_newest_first(self, db_session: Session, tiers, sample_tenant):
        member = add_member(db_session, sample_tenant)
        base = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        db_session.add_all([
            TierChange(
                tenant_id=sample_tenant.id, member_id=member.id, from_category=MemberCategory.GENERAL,
                to_category=MemberCategory.VIP, reason="frecuente", changed_by="admin", created_at=base
            ),
            TierChange(
                tenant_id=sample_tenant.id, member_id=member.id, from_category=MemberCategory.VIP,
                to_category=MemberCategory.SOCIO, reason="inscripción", changed_by="admin",
                created_at=base + timedelta(days=3)
            ),
        ])
        db_session.commit()

        history = tiers.get_tier_history(sample_tenant.id, member.id)

        assert [h.to_category for h in history] == [MemberCategory.SOCIO, MemberCategory.VIP]

    def test_history_of_unknown_member(self, tiers, sample_tenant, comercial_tenant, db_session: Session):
        member = add_member(db_session, comercial_tenant)

        with pytest.raises(MemberNotFoundError):
            tiers.get_tier_history(sample_tenant.id, member.id)

    def test_excessive_vip_upgrades_are_flagged(self, db_session: Session, tiers, sample_tenant, memory_audit_sink):
        now = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
        for i in range(7):
            member = add_member(db_session, sample_tenant, name=f"Cliente {i}")
            db_session.add(TierChange(
                tenant_id=sample_tenant.id, member_id=member.id, from_category=MemberCategory.GENERAL,
                to_category=MemberCategory.VIP, reason="promo",
                changed_by="cajero-nocturno" if i < 6 else "admin",
                created_at=now - timedelta(hours=i)
            ))
        db_session.add(TierChange(
            tenant_id=sample_tenant.id, member_id=member.id, from_category=MemberCategory.GENERAL,
            to_category=MemberCategory.VIP, reason="antigua", changed_by="admin",
            created_at=now - timedelta(days=3)
        ))
        db_session.commit()

        result = tiers.audit_tier_upgrades(sample_tenant.id, now=now)

        assert [(s.changed_by, s.upgrades) for s in result.suspicious] == [("cajero-nocturno", 6)]
        events = memory_audit_sink.of_type("EXCESSIVE_TIER_UPGRADES")
        assert len(events) == 1
        assert events[0].details["threatLevel"] == "HIGH"

    def test_five_upgrades_are_not_suspicious(self, db_session: Session, tiers, sample_tenant, memory_audit_sink):
        now = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
        for i in range(5):
            member = add_member(db_session, sample_tenant, name=f"Cliente {i}")
            db_session.add(TierChange(
                tenant_id=sample_tenant.id, member_id=member.id, from_category=MemberCategory.GENERAL,
                to_category=MemberCategory.VIP, reason="promo", changed_by="cajero",
                created_at=now - timedelta(hours=i)
            ))
        db_session.commit()

        result = tiers.audit_tier_upgrades(sample_tenant.id, now=now)

        assert result.suspicious == []
        assert memory_audit_sink.events == []
