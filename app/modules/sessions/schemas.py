"""
Esquemas Pydantic para sesiones de mesa y pagos
"""

from pydantic import BaseModel
from decimal import Decimal
from typing import Optional
from uuid import UUID

from app.modules.pricing.schemas import PricingResult


class SessionCloseResult(BaseModel):
    session_id: UUID
    duration_minutes: int
    pricing: PricingResult


class PaymentConfirmation(BaseModel):
    success: bool
    duplicate: bool = False  # True si el idempotency_key ya estaba registrado
    payment_id: Optional[UUID] = None
    amount: Optional[Decimal] = None
    error: Optional[str] = None
