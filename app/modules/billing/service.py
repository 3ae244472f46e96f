from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from app.core.config import settings
from app.common.exceptions import DocumentEmissionTimeout
from app.common.money import to_decimal
from app.database.database import get_tenant_query
from app.modules.audit.schemas import AuditSeverity
from app.modules.audit.service import AuditLogger
from app.modules.billing.provider import (
    BillingProvider, DocumentType, EmissionRequest, EmissionStatus
)
from app.modules.billing.schemas import DocumentEmissionResult
from app.modules.sessions.models import UsageLog
from app.modules.taxes.calculator import calculate_tax_breakdown, validate_tax_identity
from app.modules.taxes.service import TaxConfigService

logger = logging.getLogger(__name__)


class FiscalDocumentService:
    """
    Emisión de boletas/facturas para sesiones cobradas.

    El monto cobrado se considera precio al público (impuesto incluido) y se
    desglosa con la tasa validada del tenant. Si neto + impuesto no cuadra con
    el total no se llama al proveedor.
    """

    def __init__(self, db: Session, provider: BillingProvider, audit: AuditLogger):
        self.db = db
        self.provider = provider
        self.audit = audit
        self.taxes = TaxConfigService(db, audit)

    def emit_for_session(
        self,
        tenant_id: UUID,
        session_id: UUID,
        document_type: Optional[DocumentType] = None,
        timeout: Optional[float] = None
    ) -> DocumentEmissionResult:
        timeout = timeout if timeout is not None else settings.BILLING_TIMEOUT_SECONDS

        usage_log = get_tenant_query(self.db, UsageLog, tenant_id).filter(UsageLog.id == session_id).first()

        if not usage_log:
            return DocumentEmissionResult(success=False, error="Sesión no encontrada")
        if usage_log.ended_at is None:
            return DocumentEmissionResult(success=False, error="La sesión aún no está cerrada")
        if usage_log.folio_dte is not None:
            return DocumentEmissionResult(
                success=False,
                error=f"La sesión ya tiene el folio {usage_log.folio_dte} emitido"
            )

        tax = self.taxes.get_tax_config(tenant_id)
        rate = tax.rate
        if tax.exempt:
            document_type = DocumentType.BOLETA_EXENTA
            rate = to_decimal(0)
        document_type = document_type or DocumentType.BOLETA

        gross = to_decimal(usage_log.amount_charged)
        breakdown = calculate_tax_breakdown(gross, rate)

        check = validate_tax_identity(breakdown.net_amount, breakdown.tax_amount, gross)
        if not check.valid:
            self.audit.log(
                type="DTE_TAX_IDENTITY_MISMATCH",
                severity=AuditSeverity.ERROR,
                message=check.reason,
                details={"usageLogId": str(usage_log.id), "difference": check.difference},
                tenant_id=tenant_id
            )
            self.db.commit()
            return DocumentEmissionResult(success=False, error=check.reason, breakdown=breakdown)

        request = EmissionRequest(
            tenant_id=tenant_id,
            document_type=document_type,
            net_amount=breakdown.net_amount,
            tax_amount=breakdown.tax_amount,
            total_amount=gross
        )

        try:
            response = self.provider.emit_document(request, timeout)
        except DocumentEmissionTimeout as e:
            self.db.rollback()
            logger.warning(f"DTE emission timed out for session {session_id}: {e}")
            return DocumentEmissionResult(
                success=False,
                error="El emisor de documentos no respondió a tiempo. Reintente la emisión.",
                document_type=document_type,
                status=EmissionStatus.PENDING,
                breakdown=breakdown
            )

        try:
            usage_log.document_type = int(document_type)
            usage_log.dte_status = response.status.value
            if response.success:
                usage_log.folio_dte = response.folio
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error storing DTE for session {session_id}: {str(e)}")
            raise

        if not response.success:
            return DocumentEmissionResult(
                success=False,
                error=response.error,
                document_type=document_type,
                status=response.status,
                breakdown=breakdown
            )

        logger.info(f"DTE {int(document_type)} folio {response.folio} emitted for session {session_id}")
        return DocumentEmissionResult(
            success=True,
            document_type=document_type,
            folio=response.folio,
            status=response.status,
            verification_url=response.verification_url,
            breakdown=breakdown
        )
