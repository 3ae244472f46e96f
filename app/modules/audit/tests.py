"""
Tests para la bitácora de auditoría
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from app.common.exceptions import ImmutableRecordError
from app.modules.audit.models import SystemLog
from app.modules.audit.schemas import AuditSeverity, ThreatLevel


class TestAuditLogger:

    def test_security_event_levels(self, audit, memory_audit_sink):
        audit.security_event("MEMBER_TIER_CHANGED", ThreatLevel.LOW, "cambio")
        audit.security_event("CRITICAL_PRICE_MISMATCH", ThreatLevel.CRITICAL, "descuento", user_id="u1")

        low, critical = memory_audit_sink.events
        assert low.severity == AuditSeverity.ERROR
        assert low.message == "[SECURITY-LOW] MEMBER_TIER_CHANGED: cambio"
        assert critical.severity == AuditSeverity.CRITICAL
        assert critical.details == {"threatLevel": "CRITICAL", "userId": "u1"}

    def test_database_sink(self, db_session: Session, db_audit, sample_tenant):
        db_audit.log(
            type="Z_REPORT_CASH_DISCREPANCY",
            severity=AuditSeverity.WARN,
            message="Faltan 1000",
            details={"difference": Decimal("-1000")},
            tenant_id=sample_tenant.id,
        )
        db_session.commit()

        row = db_session.query(SystemLog).one()
        assert row.level == "WARN"
        assert row.tenant_id == sample_tenant.id
        assert row.details == {"difference": "-1000"}

    def test_system_logs_are_append_only(self, db_session: Session, db_audit):
        db_audit.log(type="TEST", severity=AuditSeverity.INFO, message="original")
        db_session.commit()

        row = db_session.query(SystemLog).one()
        row.message = "reescrito"
        with pytest.raises(ImmutableRecordError):
            db_session.commit()
        db_session.rollback()
