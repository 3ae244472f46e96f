"""
Interfaz del emisor de documentos tributarios electrónicos (DTE).

El core solo conoce esta interfaz; el proveedor concreto (SII, OpenFactura,
mock) se inyecta en FiscalDocumentService.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
from uuid import UUID
import enum

from pydantic import BaseModel


class DocumentType(int, enum.Enum):
    FACTURA = 33
    BOLETA = 39
    BOLETA_EXENTA = 41


class EmissionStatus(str, enum.Enum):
    GENERATED = "GENERATED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class EmissionRequest(BaseModel):
    tenant_id: UUID
    document_type: DocumentType
    net_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class EmissionResponse(BaseModel):
    success: bool
    status: EmissionStatus
    folio: Optional[int] = None
    verification_url: Optional[str] = None
    error: Optional[str] = None


class BillingProvider(ABC):

    @abstractmethod
    def emit_document(self, request: EmissionRequest, timeout: float) -> EmissionResponse:
        """
        Emitir un DTE.

        Debe responder dentro de `timeout` segundos o lanzar
        DocumentEmissionTimeout.
        """
        raise NotImplementedError
