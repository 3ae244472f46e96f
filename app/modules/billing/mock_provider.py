"""
Proveedor DTE simulado para desarrollo y tests.

Asigna folios correlativos reales desde folio_ranges (con bloqueo de fila)
y firma la URL de verificación; no habla con ningún servicio externo.
"""
from sqlalchemy.orm import Session
from typing import Optional
import hashlib
import logging
import time

from app.core.config import settings
from app.common.exceptions import DocumentEmissionTimeout
from app.common.money import round_2
from app.modules.billing.models import FolioRange
from app.modules.billing.provider import (
    BillingProvider, EmissionRequest, EmissionResponse, EmissionStatus
)

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 16


def sign_document(tenant_id, document_type: int, folio: int, total) -> str:
    payload = f"{tenant_id}|{int(document_type)}|{folio}|{round_2(total)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:SIGNATURE_LENGTH]


class MockBillingProvider(BillingProvider):

    def __init__(
        self,
        db: Session,
        latency_seconds: Optional[float] = None,
        verify_base_url: Optional[str] = None
    ):
        self.db = db
        self.latency_seconds = (
            latency_seconds if latency_seconds is not None else settings.MOCK_BILLING_LATENCY_SECONDS
        )
        self.verify_base_url = (verify_base_url or settings.BILLING_VERIFY_BASE_URL).rstrip("/")

    def emit_document(self, request: EmissionRequest, timeout: float) -> EmissionResponse:
        doc_type = int(request.document_type)
        logger.info(f"[MockBillingProvider] Preparando emisión DTE tipo {doc_type}")

        # Validación matemática estricta a 2 decimales
        calculated = round_2(request.net_amount + request.tax_amount)
        expected = round_2(request.total_amount)
        if calculated != expected:
            logger.error(
                f"Inconsistencia tributaria en DTE: neto {request.net_amount} + "
                f"impuesto {request.tax_amount} = {calculated}, se esperaba {expected}"
            )
            return EmissionResponse(
                success=False,
                status=EmissionStatus.FAILED,
                error="El desglose de impuestos no cuadra con el total."
            )

        if self.latency_seconds > timeout:
            raise DocumentEmissionTimeout(
                f"El proveedor no respondió en {timeout}s (latencia simulada {self.latency_seconds}s)"
            )
        if self.latency_seconds > 0:
            time.sleep(self.latency_seconds)

        folio = self._next_folio(request.tenant_id, doc_type)
        if folio is None:
            return EmissionResponse(
                success=False,
                status=EmissionStatus.FAILED,
                error=f"Rango de folios agotado para el tipo {doc_type}"
            )

        signature = sign_document(request.tenant_id, doc_type, folio, request.total_amount)
        verification_url = f"{self.verify_base_url}/{request.tenant_id}/{doc_type}/{folio}?sig={signature}"

        logger.info(f"[MockBillingProvider] Emisión exitosa. DTE: {doc_type} Folio: {folio}")
        return EmissionResponse(
            success=True,
            status=EmissionStatus.GENERATED,
            folio=folio,
            verification_url=verification_url
        )

    def _next_folio(self, tenant_id, document_type: int) -> Optional[int]:
        folio_range = self.db.query(FolioRange).filter(
            FolioRange.tenant_id == tenant_id,
            FolioRange.document_type == document_type
        ).with_for_update().first()

        if not folio_range:
            folio_range = FolioRange(
                tenant_id=tenant_id,
                document_type=document_type,
                start_folio=1,
                end_folio=1000000,
                current_folio=1
            )
            self.db.add(folio_range)
            self.db.flush()
            return folio_range.current_folio

        if folio_range.current_folio >= folio_range.end_folio:
            return None

        folio_range.current_folio += 1
        self.db.flush()
        return folio_range.current_folio
