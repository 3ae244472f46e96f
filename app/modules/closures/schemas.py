"""
Esquemas Pydantic para el cierre de turno (Z-Report)
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.modules.closures.seal import IntegritySeal


class ShiftClosureRequest(BaseModel):
    """
    Arqueo ciego: el cajero declara el efectivo contado antes de que el
    sistema revele el monto teórico.
    """
    cash_in_hand: Decimal = Field(..., ge=0, description="Efectivo contado por el cajero")
    closed_by: str = Field(..., min_length=1, max_length=100, description="Identidad de quien cierra")
    notes: Optional[str] = Field(None, max_length=1000)


class ClosureTotals(BaseModel):
    """Acumulados del turno, antes de persistir"""
    session_count: int = 0
    time_revenue: Decimal = Decimal("0")
    product_revenue: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    cash_revenue: Decimal = Decimal("0")
    card_revenue: Decimal = Decimal("0")
    credit_revenue: Decimal = Decimal("0")

    @property
    def total_revenue(self) -> Decimal:
        return self.time_revenue + self.product_revenue


class CashReconciliation(BaseModel):
    theoretical: Decimal
    declared: Decimal
    difference: Decimal  # > 0 sobra, < 0 falta
    tolerance: Decimal
    has_alert: bool


class ClosureSummary(BaseModel):
    total_revenue: Decimal
    net_profit: Decimal
    session_count: int


class ShiftClosureResult(BaseModel):
    success: bool
    consolidated: bool = False
    message: Optional[str] = None
    error: Optional[str] = None
    balance_id: Optional[UUID] = None
    has_cash_alert: bool = False
    cash_difference: Optional[Decimal] = None
    summary: Optional[ClosureSummary] = None
    seal: Optional[IntegritySeal] = None


class PendingClosureSummary(BaseModel):
    """Lo único que se muestra antes del arqueo: no incluye montos"""
    tenant_id: UUID
    pending_sessions: int
    open_sessions: int


class DailyBalanceOut(BaseModel):
    id: UUID
    date: datetime
    closed_by: str
    notes: Optional[str] = None
    total_revenue: Decimal
    time_revenue: Decimal
    product_revenue: Decimal
    cash_revenue: Decimal
    card_revenue: Decimal
    credit_revenue: Decimal
    total_cost: Decimal
    waste_cost: Decimal
    maintenance_cost: Decimal
    net_profit: Decimal
    cash_in_hand: Optional[Decimal] = None
    cash_difference: Optional[Decimal] = None
    has_cash_alert: bool
    session_count: int = 0

    model_config = {"from_attributes": True}


class DailyBalanceList(BaseModel):
    balances: List[DailyBalanceOut]
    total: int
