from pydantic import BaseModel
from typing import Optional

from app.modules.billing.provider import DocumentType, EmissionStatus
from app.modules.taxes.schemas import TaxBreakdown


class DocumentEmissionResult(BaseModel):
    success: bool
    error: Optional[str] = None
    document_type: Optional[DocumentType] = None
    folio: Optional[int] = None
    status: Optional[EmissionStatus] = None
    verification_url: Optional[str] = None
    breakdown: Optional[TaxBreakdown] = None
