"""
Tests para desglose de impuestos y configuración fiscal del tenant
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from sqlalchemy.orm import Session

from app.modules.audit.schemas import AuditSeverity
from app.modules.taxes.calculator import calculate_tax_breakdown, validate_tax_identity
from app.modules.taxes.schemas import TaxConfigUpdate
from app.modules.taxes.service import TaxConfigService


# ===== DESGLOSE =====

class TestTaxBreakdown:

    def test_iva_19(self):
        """Test precio al público 7.140 con IVA 19%"""
        breakdown = calculate_tax_breakdown(Decimal("7140"), Decimal("0.19"))

        assert breakdown.net_amount == Decimal("6000.00")
        assert breakdown.tax_amount == Decimal("1140.00")
        assert breakdown.gross_amount == Decimal("7140.00")

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-0.05")])
    def test_zero_or_negative_rate_is_exempt(self, rate):
        breakdown = calculate_tax_breakdown(Decimal("5000"), rate)

        assert breakdown.net_amount == Decimal("5000")
        assert breakdown.tax_amount == Decimal("0")

    @pytest.mark.parametrize("gross", ["0", "1", "999.99", "5712", "12345.67", "1000000"])
    @pytest.mark.parametrize("rate", ["0.05", "0.18", "0.19", "0.21", "0.999"])
    def test_net_plus_tax_reproduces_gross(self, gross, rate):
        breakdown = calculate_tax_breakdown(Decimal(gross), Decimal(rate))

        assert abs(breakdown.net_amount + breakdown.tax_amount - Decimal(gross)) <= Decimal("0.01")

    def test_float_input(self):
        breakdown = calculate_tax_breakdown(119.0, 0.19)

        assert breakdown.net_amount == Decimal("100.00")
        assert breakdown.tax_amount == Decimal("19.00")


class TestTaxIdentity:

    def test_identity_holds(self):
        assert validate_tax_identity(Decimal("6000"), Decimal("1140"), Decimal("7140")).valid is True
        assert validate_tax_identity(Decimal("6000"), Decimal("1140.01"), Decimal("7140")).valid is True

    def test_identity_broken(self):
        check = validate_tax_identity(Decimal("6000"), Decimal("1000"), Decimal("7140"))

        assert check.valid is False
        assert check.difference == Decimal("140")
        assert "no cuadra" in check.reason


# ===== CONFIGURACIÓN DEL TENANT =====

class TestTaxConfigService:

    def test_valid_config(self, db_session: Session, audit, memory_audit_sink, sample_tenant):
        config = TaxConfigService(db_session, audit).get_tax_config(sample_tenant.id)

        assert config.rate == Decimal("0.19")
        assert config.name == "IVA"
        assert config.percentage == 19
        assert memory_audit_sink.events == []

    def test_missing_tenant(self, db_session: Session, audit):
        config = TaxConfigService(db_session, audit).get_tax_config(uuid4())

        assert config.rate == Decimal("0")
        assert config.name == "Tax"
        assert config.exempt is False

    def test_out_of_range_rate_is_clamped(self, db_session: Session, audit, memory_audit_sink, sample_tenant):
        sample_tenant.tax_rate = Decimal("1.5")
        db_session.commit()

        config = TaxConfigService(db_session, audit).get_tax_config(sample_tenant.id)

        assert config.rate == Decimal("0")
        invalid = memory_audit_sink.of_type("TAX_RATE_INVALID")
        assert len(invalid) == 1
        assert invalid[0].severity == AuditSeverity.ERROR
        assert memory_audit_sink.of_type("TAX_ZERO_NOT_EXEMPT")

    def test_zero_rate_not_exempt_warns(self, db_session: Session, audit, memory_audit_sink, sample_tenant):
        sample_tenant.tax_rate = Decimal("0")
        db_session.commit()

        TaxConfigService(db_session, audit).get_tax_config(sample_tenant.id)

        warnings = memory_audit_sink.of_type("TAX_ZERO_NOT_EXEMPT")
        assert len(warnings) == 1
        assert warnings[0].severity == AuditSeverity.WARN

    def test_zero_rate_exempt_is_silent(self, db_session: Session, audit, memory_audit_sink, sample_tenant):
        sample_tenant.tax_rate = Decimal("0")
        sample_tenant.is_tax_exempt = True
        db_session.commit()

        config = TaxConfigService(db_session, audit).get_tax_config(sample_tenant.id)

        assert config.exempt is True
        assert memory_audit_sink.events == []

    def test_update_config(self, db_session: Session, audit, memory_audit_sink, sample_tenant):
        result = TaxConfigService(db_session, audit).update_tax_config(
            sample_tenant.id, TaxConfigUpdate(tax_percentage=Decimal("18"), tax_name=" igv ")
        )

        assert result.success is True
        db_session.refresh(sample_tenant)
        assert sample_tenant.tax_rate == Decimal("0.18")
        assert sample_tenant.tax_name == "IGV"
        assert memory_audit_sink.of_type("TAX_CONFIG_UPDATED")

    @pytest.mark.parametrize("percentage,name", [
        (Decimal("101"), "IVA"), (Decimal("-1"), "IVA"), (Decimal("19"), "   "),
    ])
    def test_update_rejects_invalid_input(self, db_session: Session, audit, sample_tenant, percentage, name):
        result = TaxConfigService(db_session, audit).update_tax_config(
            sample_tenant.id, TaxConfigUpdate(tax_percentage=percentage, tax_name=name)
        )

        assert result.success is False
        db_session.refresh(sample_tenant)
        assert sample_tenant.tax_rate == Decimal("0.19")
