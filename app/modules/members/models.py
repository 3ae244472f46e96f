"""
Modelos de socios/clientes y su trail de cambios de categoría.

- Member: pertenece a un único tenant; su categoría define el descuento.
- TierChange: bitácora inmutable de transiciones de categoría.
"""
from sqlalchemy import Column, String, Text, DateTime, Numeric, Enum, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from uuid import uuid4
import enum

from app.database.database import Base
from app.common.mixins import BaseMixin, TenantMixin, ImmutableMixin


class MemberCategory(str, enum.Enum):
    GENERAL = "GENERAL"
    VIP = "VIP"
    SOCIO = "SOCIO"


class SubscriptionStatus(str, enum.Enum):
    """Estado de la cuota del socio (modelo CLUB_SOCIOS)"""
    ACTIVE = "ACTIVE"
    IN_ARREARS = "IN_ARREARS"
    CANCELED = "CANCELED"


class Member(Base, BaseMixin):
    __tablename__ = "members"

    name = Column(String(200), nullable=False, index=True)
    email = Column(String(100), nullable=True)
    category = Column(Enum(MemberCategory), nullable=False, default=MemberCategory.GENERAL, index=True)

    # Texto libre: puede venir vacío o con estados del proveedor de pagos
    subscription_status = Column(String(20), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    discount = Column(Numeric(5, 2), nullable=False, default=0)  # % guardado en el socio
    amount_spent = Column(Numeric(15, 2), nullable=False, default=0)  # Gasto acumulado

    tier_changes = relationship("TierChange", back_populates="member", order_by="TierChange.created_at")


class TierChange(ImmutableMixin, Base, TenantMixin):
    """Trail append-only de cambios de categoría"""
    __tablename__ = "tier_changes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("members.id"), nullable=False, index=True)
    from_category = Column(Enum(MemberCategory), nullable=False)
    to_category = Column(Enum(MemberCategory), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    changed_by = Column(String(100), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    member = relationship("Member", back_populates="tier_changes")
