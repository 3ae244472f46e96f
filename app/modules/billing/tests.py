"""
Tests para emisión de documentos tributarios (DTE)
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy.orm import Session

from app.common.exceptions import DocumentEmissionTimeout
from app.modules.billing.mock_provider import MockBillingProvider, sign_document
from app.modules.billing.provider import (
    BillingProvider, DocumentType, EmissionRequest, EmissionResponse, EmissionStatus
)
from app.modules.billing.service import FiscalDocumentService
from app.modules.sessions.models import Table, UsageLog
from app.modules.taxes.schemas import TaxBreakdown


ENDED = datetime(2026, 3, 10, 22, 0, tzinfo=timezone.utc)


class SpyProvider(BillingProvider):
    """Registra las llamadas sin emitir nada"""

    def __init__(self):
        self.requests = []

    def emit_document(self, request, timeout):
        self.requests.append(request)
        return EmissionResponse(success=True, status=EmissionStatus.GENERATED, folio=77)


# ===== FIXTURES =====

@pytest.fixture
def provider(db_session: Session):
    return MockBillingProvider(db_session, latency_seconds=0, verify_base_url="https://verify.test/dte/")


@pytest.fixture
def charged_session(db_session: Session, sample_tenant):
    table = Table(tenant_id=sample_tenant.id, number=1)
    db_session.add(table)
    db_session.flush()
    usage_log = UsageLog(
        tenant_id=sample_tenant.id, table_id=table.id,
        started_at=ENDED - timedelta(hours=1), ended_at=ENDED, duration_minutes=60,
        amount_charged=Decimal("7140"),
    )
    db_session.add(usage_log)
    db_session.commit()
    return usage_log


def request_for(tenant_id, document_type=DocumentType.BOLETA, net="6000", tax="1140", total="7140"):
    return EmissionRequest(
        tenant_id=tenant_id, document_type=document_type,
        net_amount=Decimal(net), tax_amount=Decimal(tax), total_amount=Decimal(total)
    )


# ===== PROVEEDOR SIMULADO =====

class TestMockBillingProvider:

    def test_sequential_folios_per_tenant_and_type(self, provider, sample_tenant, comercial_tenant):
        first = provider.emit_document(request_for(sample_tenant.id), timeout=1)
        second = provider.emit_document(request_for(sample_tenant.id), timeout=1)
        factura = provider.emit_document(request_for(sample_tenant.id, DocumentType.FACTURA), timeout=1)
        other_tenant = provider.emit_document(request_for(comercial_tenant.id), timeout=1)

        assert (first.folio, second.folio) == (1, 2)
        assert factura.folio == 1
        assert other_tenant.folio == 1
        assert first.status == EmissionStatus.GENERATED

    def test_verification_url_is_signed(self, provider, sample_tenant):
        response = provider.emit_document(request_for(sample_tenant.id), timeout=1)

        signature = sign_document(sample_tenant.id, 39, 1, Decimal("7140"))
        assert len(signature) == 16
        assert response.verification_url == f"https://verify.test/dte/{sample_tenant.id}/39/1?sig={signature}"

    def test_inconsistent_breakdown_is_refused(self, provider, sample_tenant):
        response = provider.emit_document(request_for(sample_tenant.id, net="6000", tax="1000"), timeout=1)

        assert response.success is False
        assert response.status == EmissionStatus.FAILED
        assert response.folio is None

    def test_latency_beyond_timeout(self, db_session: Session, sample_tenant):
        slow = MockBillingProvider(db_session, latency_seconds=5)

        with pytest.raises(DocumentEmissionTimeout):
            slow.emit_document(request_for(sample_tenant.id), timeout=0.5)


# ===== SERVICIO =====

class TestFiscalDocumentService:

    def test_emit_for_session(self, db_session: Session, provider, audit, sample_tenant, charged_session):
        result = FiscalDocumentService(db_session, provider, audit).emit_for_session(
            sample_tenant.id, charged_session.id
        )

        assert result.success is True
        assert result.folio == 1
        assert result.document_type == DocumentType.BOLETA
        assert result.breakdown.net_amount == Decimal("6000.00")
        assert result.breakdown.tax_amount == Decimal("1140.00")

        db_session.refresh(charged_session)
        assert charged_session.folio_dte == 1
        assert charged_session.document_type == 39
        assert charged_session.dte_status == "GENERATED"

    def test_exempt_tenant_emits_boleta_exenta(self, db_session: Session, provider, audit, sample_tenant, charged_session):
        sample_tenant.is_tax_exempt = True
        sample_tenant.tax_rate = Decimal("0")
        db_session.commit()

        result = FiscalDocumentService(db_session, provider, audit).emit_for_session(
            sample_tenant.id, charged_session.id
        )

        assert result.document_type == DocumentType.BOLETA_EXENTA
        assert result.breakdown.tax_amount == Decimal("0")
        assert result.breakdown.net_amount == Decimal("7140")

    def test_session_is_emitted_once(self, db_session: Session, provider, audit, sample_tenant, charged_session):
        service = FiscalDocumentService(db_session, provider, audit)
        service.emit_for_session(sample_tenant.id, charged_session.id)

        again = service.emit_for_session(sample_tenant.id, charged_session.id)

        assert again.success is False
        assert "folio 1" in again.error

    def test_identity_failure_never_reaches_provider(
        self, db_session: Session, audit, memory_audit_sink, sample_tenant, charged_session, monkeypatch
    ):
        spy = SpyProvider()
        monkeypatch.setattr(
            "app.modules.billing.service.calculate_tax_breakdown",
            lambda gross, rate: TaxBreakdown(
                net_amount=Decimal("6000"), tax_amount=Decimal("1000"), gross_amount=gross
            ),
        )

        result = FiscalDocumentService(db_session, spy, audit).emit_for_session(
            sample_tenant.id, charged_session.id
        )

        assert result.success is False
        assert spy.requests == []
        assert len(memory_audit_sink.of_type("DTE_TAX_IDENTITY_MISMATCH")) == 1

    def test_timeout_returns_failure(self, db_session: Session, audit, sample_tenant, charged_session):
        slow = MockBillingProvider(db_session, latency_seconds=30)

        result = FiscalDocumentService(db_session, slow, audit).emit_for_session(
            sample_tenant.id, charged_session.id, timeout=1
        )

        assert result.success is False
        assert result.status == EmissionStatus.PENDING
        db_session.refresh(charged_session)
        assert charged_session.folio_dte is None

    def test_open_session_is_rejected(self, db_session: Session, provider, audit, sample_tenant, charged_session):
        charged_session.ended_at = None
        db_session.commit()

        result = FiscalDocumentService(db_session, provider, audit).emit_for_session(
            sample_tenant.id, charged_session.id
        )

        assert result.success is False
