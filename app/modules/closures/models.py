"""
Cierre de turno (Z-Report / DailyBalance)

Snapshot inmutable que consolida N sesiones. Una vez creado no se modifica
ni se borra; las sesiones quedan vinculadas de forma permanente.
"""
from sqlalchemy import Column, String, Text, Boolean, DateTime, Numeric, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import TenantMixin, ImmutableMixin


class DailyBalance(ImmutableMixin, Base, TenantMixin):
    __tablename__ = "daily_balances"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    closed_by = Column(String(100), nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="CLOSED")

    # Revenue streams
    total_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    time_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    product_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    membership_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    rental_revenue = Column(Numeric(15, 2), nullable=False, default=0)

    # Métodos de pago
    cash_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    card_revenue = Column(Numeric(15, 2), nullable=False, default=0)
    credit_revenue = Column(Numeric(15, 2), nullable=False, default=0)

    # Costos
    total_cost = Column(Numeric(15, 2), nullable=False, default=0)
    waste_cost = Column(Numeric(15, 2), nullable=False, default=0)
    maintenance_cost = Column(Numeric(15, 2), nullable=False, default=0)
    net_profit = Column(Numeric(15, 2), nullable=False, default=0)

    # Arqueo ciego
    cash_in_hand = Column(Numeric(15, 2), nullable=True)
    cash_difference = Column(Numeric(15, 2), nullable=True)
    has_cash_alert = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    usage_logs = relationship("UsageLog", back_populates="daily_balance")
