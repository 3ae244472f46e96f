"""
Tests para el módulo de Precios

Cubre:
- Escenarios de cobro de referencia (socio activo / socio moroso)
- Reglas de descuento por modelo de negocio (CLUB_SOCIOS vs COMERCIAL)
- El descuento nunca toca el consumo de la barra
- Redondeo por moneda (CLP entero, USD 2 decimales)
- Validadores de integridad de descuento y de cuenta dividida
- PricingService.process_payment con eventos de seguridad
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy.orm import Session

from app.modules.audit.schemas import AuditSeverity
from app.modules.members.models import Member, MemberCategory, SubscriptionStatus
from app.modules.pricing.engine import calculate_total
from app.modules.pricing.rules import DISCOUNT_RULES, DiscountSource, resolve_discount
from app.modules.pricing.schemas import (
    MemberPricingContext, PricingInput, SplitPart, TenantPricingContext
)
from app.modules.pricing.service import PricingService
from app.modules.pricing.validators import validate_discount_integrity, validate_split_consistency
from app.modules.sessions.models import Table, UsageLog
from app.modules.tenants.models import BusinessModel
from app.modules.tenants.schemas import TierSettings


# ===== FIXTURES =====

@pytest.fixture
def club_context():
    return TenantPricingContext(
        business_model=BusinessModel.CLUB_SOCIOS,
        base_rate=Decimal("6000"),
        tax_rate=Decimal("0.19"),
        currency_code="CLP",
    )


@pytest.fixture
def comercial_context():
    return TenantPricingContext(
        business_model=BusinessModel.COMERCIAL,
        tier_settings=TierSettings(vipDiscount=15),
        base_rate=Decimal("6000"),
        tax_rate=Decimal("0.19"),
        currency_code="CLP",
    )


def socio(status=SubscriptionStatus.ACTIVE.value, discount="20"):
    return MemberPricingContext(
        category=MemberCategory.SOCIO,
        subscription_status=status,
        discount=Decimal(discount),
    )


def is_integer(value: Decimal) -> bool:
    return value == value.to_integral_value()


def has_at_most_two_decimals(value: Decimal) -> bool:
    return value.as_tuple().exponent >= -2


# ===== ESCENARIOS DE REFERENCIA =====

class TestReferenceScenarios:
    """Socio de club con y sin cuota al día"""

    def test_active_socio_in_club(self, club_context):
        """Test socio ACTIVE: 20% sobre el tiempo y luego IVA"""
        result = calculate_total(PricingInput(
            tenant=club_context, member=socio(), duration_minutes=60, consumption_total=0
        ))

        assert result.time_charge == Decimal("6000")
        assert result.discount_amount == Decimal("1200")
        assert result.subtotal == Decimal("4800")
        assert result.tax_amount == Decimal("912")
        assert result.total == Decimal("5712")
        assert result.applied_discount is True
        assert result.discount_percentage == Decimal("20")
        assert result.warnings == []

    def test_socio_in_arrears_pays_general_rate(self, club_context):
        """Test socio IN_ARREARS: sin descuento y con advertencia"""
        result = calculate_total(PricingInput(
            tenant=club_context,
            member=socio(status=SubscriptionStatus.IN_ARREARS.value),
            duration_minutes=60,
        ))

        assert result.discount_amount == Decimal("0")
        assert result.subtotal == Decimal("6000")
        assert result.total == Decimal("7140")
        assert result.applied_discount is False
        assert result.discount_reason == "SOCIO membership expired"
        assert len(result.warnings) == 1
        assert "IN_ARREARS" in result.warnings[0]

    def test_socio_without_status(self, club_context):
        """Test socio sin estado de cuota: se trata como no activo"""
        result = calculate_total(PricingInput(
            tenant=club_context, member=socio(status=None), duration_minutes=60
        ))

        assert result.discount_amount == Decimal("0")
        assert "undefined" in result.warnings[0]

    def test_walk_in_customer(self, club_context):
        """Test cliente sin ficha: tarifa general"""
        result = calculate_total(PricingInput(tenant=club_context, duration_minutes=90))

        assert result.time_charge == Decimal("9000")
        assert result.total == Decimal("10710")
        assert result.member_category is None


# ===== REGLAS POR MODELO DE NEGOCIO =====

class TestBusinessModelGating:
    """La categoría solo descuenta cuando el modelo de negocio lo permite"""

    @pytest.mark.parametrize("category", [MemberCategory.GENERAL, MemberCategory.VIP])
    def test_club_never_discounts_general_or_vip(self, club_context, category):
        member = MemberPricingContext(
            category=category, subscription_status="ACTIVE", discount=Decimal("50")
        )
        result = calculate_total(PricingInput(tenant=club_context, member=member, duration_minutes=60))

        assert result.discount_amount == Decimal("0")
        assert result.discount_percentage == Decimal("0")

    def test_comercial_never_discounts_general(self, comercial_context):
        member = MemberPricingContext(category=MemberCategory.GENERAL, discount=Decimal("30"))
        result = calculate_total(PricingInput(tenant=comercial_context, member=member, duration_minutes=60))

        assert result.discount_amount == Decimal("0")

    def test_comercial_vip_uses_tier_setting(self, comercial_context):
        """Test VIP en modelo COMERCIAL: usa vipDiscount y no exige cuota"""
        member = MemberPricingContext(category=MemberCategory.VIP, discount=Decimal("5"))
        result = calculate_total(PricingInput(tenant=comercial_context, member=member, duration_minutes=60))

        assert result.discount_percentage == Decimal("15")
        assert result.discount_amount == Decimal("900")
        assert result.subtotal == Decimal("5100")
        assert result.total == Decimal("6069")

    def test_comercial_socio_falls_back_to_member_discount(self, comercial_context):
        """Test SOCIO sin socioDiscount configurado: usa el % del socio"""
        member = MemberPricingContext(
            category=MemberCategory.SOCIO, subscription_status="CANCELED", discount=Decimal("10")
        )
        result = calculate_total(PricingInput(tenant=comercial_context, member=member, duration_minutes=60))

        assert result.discount_amount == Decimal("600")
        assert result.warnings == []

    def test_rule_table_covers_every_combination(self):
        for model in BusinessModel:
            for category in MemberCategory:
                assert (model, category) in DISCOUNT_RULES

        assert DISCOUNT_RULES[(BusinessModel.CLUB_SOCIOS, MemberCategory.SOCIO)].source == DiscountSource.MEMBER_IF_ACTIVE

    def test_out_of_range_discount_is_clamped(self, club_context):
        resolution = resolve_discount(club_context, socio(discount="150"))

        assert resolution.percentage == Decimal("100")
        assert any("clamped" in w for w in resolution.warnings)


# ===== ALCANCE DEL DESCUENTO Y REDONDEO =====

class TestDiscountScopeAndRounding:

    def test_consumption_is_never_discounted(self, club_context):
        """Test el descuento solo se aplica al tiempo"""
        result = calculate_total(PricingInput(
            tenant=club_context, member=socio(), duration_minutes=60, consumption_total=Decimal("3000")
        ))

        assert result.discount_amount == Decimal("1200")
        assert result.subtotal == Decimal("7800")
        assert result.discount_amount <= result.time_charge

    @pytest.mark.parametrize("minutes", [0, 1, 7, 37, 61, 119, 600])
    def test_clp_fields_are_integers(self, club_context, minutes):
        result = calculate_total(PricingInput(
            tenant=club_context, member=socio(discount="12.5"), duration_minutes=minutes,
            consumption_total=Decimal("1990")
        ))

        for value in (result.subtotal, result.discount_amount, result.tax_amount, result.total):
            assert is_integer(value)
        assert result.discount_amount <= result.time_charge

    @pytest.mark.parametrize("minutes", [1, 7, 37, 61])
    def test_usd_fields_have_two_decimals(self, minutes):
        context = TenantPricingContext(
            business_model=BusinessModel.COMERCIAL,
            base_rate=Decimal("10"),
            tax_rate=Decimal("0.19"),
            currency_code="USD",
        )
        result = calculate_total(PricingInput(tenant=context, duration_minutes=minutes))

        for value in (result.subtotal, result.discount_amount, result.tax_amount, result.total):
            assert has_at_most_two_decimals(value)

    def test_same_input_same_result(self, club_context):
        data = PricingInput(tenant=club_context, member=socio(), duration_minutes=45, consumption_total=500)
        assert calculate_total(data) == calculate_total(data)


# ===== VALIDADORES =====

class TestValidators:

    def test_discount_within_tolerance(self, club_context):
        expected = calculate_total(PricingInput(tenant=club_context, member=socio(), duration_minutes=60))

        assert validate_discount_integrity(Decimal("1200"), expected).valid is True
        assert validate_discount_integrity(Decimal("1200.01"), expected).valid is True

    def test_discount_mismatch(self, club_context):
        expected = calculate_total(PricingInput(tenant=club_context, member=socio(), duration_minutes=60))
        validation = validate_discount_integrity(Decimal("1000"), expected)

        assert validation.valid is False
        assert validation.reason == "Discount mismatch: Applied 1000 vs Expected 1200"

    def test_split_total_mismatch(self):
        """Test cuenta dividida que crea dinero"""
        result = validate_split_consistency(Decimal("10000"), [
            SplitPart(part_number=1, amount=Decimal("5000")),
            SplitPart(part_number=2, amount=Decimal("5100")),
        ])

        assert result.valid is False
        assert result.difference == Decimal("100")
        assert "difference 100" in result.violations[0]

    def test_split_exact(self):
        result = validate_split_consistency(Decimal("10000"), [
            SplitPart(part_number=1, amount=Decimal("3333.33")),
            SplitPart(part_number=2, amount=Decimal("3333.33")),
            SplitPart(part_number=3, amount=Decimal("3333.34")),
        ])

        assert result.valid is True
        assert result.violations == []

    def test_split_negative_and_zero_parts(self):
        result = validate_split_consistency(Decimal("100"), [
            SplitPart(part_number=1, amount=Decimal("150")),
            SplitPart(part_number=2, amount=Decimal("-50")),
            SplitPart(part_number=3, amount=Decimal("0")),
        ])

        assert result.valid is False
        assert "Negative amounts detected: Parts 2" in result.violations
        assert "Zero amounts detected: Parts 3" in result.violations


# ===== PRICING SERVICE =====

def closed_session(db: Session, tenant, member=None, minutes=60, discount_applied=Decimal("0")):
    table = Table(tenant_id=tenant.id, number=1)
    db.add(table)
    db.flush()

    ended = datetime(2026, 3, 10, 22, 0, tzinfo=timezone.utc)
    usage_log = UsageLog(
        tenant_id=tenant.id,
        table_id=table.id,
        member_id=member.id if member else None,
        started_at=ended - timedelta(minutes=minutes),
        ended_at=ended,
        duration_minutes=minutes,
        discount_applied=discount_applied,
    )
    db.add(usage_log)
    db.commit()
    return usage_log


def add_member(db: Session, tenant, status, discount="20"):
    member = Member(
        tenant_id=tenant.id,
        name="Socio de Prueba",
        category=MemberCategory.SOCIO,
        subscription_status=status,
        discount=Decimal(discount),
    )
    db.add(member)
    db.commit()
    return member


class TestPricingService:

    def test_process_payment_persists_charge(self, db_session: Session, sample_tenant, audit, memory_audit_sink):
        member = add_member(db_session, sample_tenant, "ACTIVE")
        usage_log = closed_session(db_session, sample_tenant, member)

        result = PricingService(db_session, audit).process_payment(sample_tenant.id, usage_log.id, "cajero-1")

        assert result.success is True
        assert result.pricing.total == Decimal("5712")
        db_session.refresh(usage_log)
        assert usage_log.amount_charged == Decimal("5712")
        assert usage_log.discount_applied == Decimal("1200")
        assert memory_audit_sink.events == []

    def test_membership_warning_is_logged(self, db_session: Session, sample_tenant, audit, memory_audit_sink):
        member = add_member(db_session, sample_tenant, "IN_ARREARS")
        usage_log = closed_session(db_session, sample_tenant, member)

        result = PricingService(db_session, audit).process_payment(sample_tenant.id, usage_log.id)

        assert result.pricing.total == Decimal("7140")
        events = memory_audit_sink.of_type("MEMBERSHIP_STATUS_WARNING")
        assert len(events) == 1
        assert events[0].details["threatLevel"] == "LOW"

    def test_tampered_discount_raises_critical_event(self, db_session: Session, sample_tenant, audit, memory_audit_sink):
        member = add_member(db_session, sample_tenant, "ACTIVE")
        usage_log = closed_session(db_session, sample_tenant, member, discount_applied=Decimal("3000"))

        result = PricingService(db_session, audit).process_payment(sample_tenant.id, usage_log.id, "cajero-2")

        assert result.success is True
        assert result.discount_validation.valid is False
        events = memory_audit_sink.of_type("CRITICAL_PRICE_MISMATCH")
        assert len(events) == 1
        assert events[0].severity == AuditSeverity.CRITICAL
        assert events[0].details["userId"] == "cajero-2"
        db_session.refresh(usage_log)
        assert usage_log.discount_applied == Decimal("1200")

    def test_open_session_is_rejected(self, db_session: Session, sample_tenant, audit):
        table = Table(tenant_id=sample_tenant.id, number=2)
        db_session.add(table)
        db_session.flush()
        usage_log = UsageLog(
            tenant_id=sample_tenant.id, table_id=table.id, started_at=datetime.now(timezone.utc)
        )
        db_session.add(usage_log)
        db_session.commit()

        result = PricingService(db_session, audit).process_payment(sample_tenant.id, usage_log.id)

        assert result.success is False
        assert result.error == "La sesión aún no está cerrada"

    def test_other_tenant_session_not_found(self, db_session: Session, sample_tenant, comercial_tenant, audit):
        usage_log = closed_session(db_session, sample_tenant)

        result = PricingService(db_session, audit).process_payment(comercial_tenant.id, usage_log.id)

        assert result.success is False
        assert result.error == "Sesión no encontrada"
