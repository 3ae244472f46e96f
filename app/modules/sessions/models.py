"""
Modelos SQLAlchemy para mesas y sesiones de juego

- Table: mesa de billar con su estado operativo
- UsageLog: una sesión de juego (apertura → cierre → consolidación en cierre Z)
- OrderItem: consumo de barra asociado a la sesión
- PaymentRecord: pagos de la sesión (idempotency_key evita registrar dos veces
  el mismo evento externo)
- MaintenanceLog: gastos de mantención que descuenta el cierre Z

Arquitectura multi-tenant: todas las tablas incluyen tenant_id
"""

from sqlalchemy import (
    Column, String, Integer, DateTime, Numeric, Enum, ForeignKey, Text, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from app.database.database import Base
from app.common.mixins import BaseMixin


# ===== ENUMS =====

class TableStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CLEANING = "CLEANING"


class SessionPaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class PaymentStatus(str, enum.Enum):
    """Solo COMPLETED cuenta como ingreso"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class SessionState(str, enum.Enum):
    OPEN = "OPEN"                  # ended_at nulo
    CLOSED = "CLOSED"              # terminada, cobro calculado
    CONSOLIDATED = "CONSOLIDATED"  # vinculada a un cierre Z


# ===== MODELOS =====

class Table(Base, BaseMixin):
    __tablename__ = "tables"

    number = Column(Integer, nullable=False)
    status = Column(Enum(TableStatus), nullable=False, default=TableStatus.AVAILABLE, index=True)
    current_session_id = Column(Uuid(as_uuid=True), nullable=True)
    last_session_start = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_table_tenant_number"),
    )


class UsageLog(Base, BaseMixin):
    __tablename__ = "usage_logs"

    table_id = Column(Uuid(as_uuid=True), ForeignKey("tables.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("members.id"), nullable=True, index=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True, index=True)
    duration_minutes = Column(Integer, nullable=True)

    amount_charged = Column(Numeric(15, 2), nullable=False, default=0)
    discount_applied = Column(Numeric(15, 2), nullable=False, default=0)
    payment_status = Column(Enum(SessionPaymentStatus), nullable=False, default=SessionPaymentStatus.PENDING)

    # Se asigna una sola vez, en la misma transacción que crea el cierre Z
    daily_balance_id = Column(Uuid(as_uuid=True), ForeignKey("daily_balances.id"), nullable=True, index=True)

    # Documento tributario emitido
    document_type = Column(Integer, nullable=True)
    folio_dte = Column(Integer, nullable=True)
    dte_status = Column(String(20), nullable=True)

    # Relationships
    table = relationship("Table")
    member = relationship("Member")
    items = relationship("OrderItem", back_populates="usage_log", cascade="all, delete-orphan")
    payment_records = relationship("PaymentRecord", back_populates="usage_log")
    daily_balance = relationship("DailyBalance", back_populates="usage_logs")

    @property
    def consumption_total(self):
        return sum((item.total_price for item in self.items), 0)

    @property
    def state(self) -> SessionState:
        if self.ended_at is None:
            return SessionState.OPEN
        if self.daily_balance_id is None:
            return SessionState.CLOSED
        return SessionState.CONSOLIDATED


class OrderItem(Base, BaseMixin):
    __tablename__ = "order_items"

    usage_log_id = Column(Uuid(as_uuid=True), ForeignKey("usage_logs.id"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    total_price = Column(Numeric(15, 2), nullable=False)

    usage_log = relationship("UsageLog", back_populates="items")
    product = relationship("Product")


class PaymentRecord(Base, BaseMixin):
    __tablename__ = "payment_records"

    usage_log_id = Column(Uuid(as_uuid=True), ForeignKey("usage_logs.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(String(20), nullable=True)  # CASH, CARD, TRANSFER, CREDIT...
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    provider = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    idempotency_key = Column(String(100), nullable=True)

    usage_log = relationship("UsageLog", back_populates="payment_records")

    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_payment_tenant_idempotency_key"),
    )


class MaintenanceLog(Base, BaseMixin):
    """Gasto de mantención (paños, tacos, reparaciones) descontado en el cierre Z"""
    __tablename__ = "maintenance_logs"

    table_id = Column(Uuid(as_uuid=True), ForeignKey("tables.id"), nullable=True)
    cost = Column(Numeric(15, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)
    daily_balance_id = Column(Uuid(as_uuid=True), ForeignKey("daily_balances.id"), nullable=True, index=True)
