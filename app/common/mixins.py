"""
Common mixins for multi-tenant models
"""
from sqlalchemy import Column, DateTime, Uuid, event
from sqlalchemy.sql import func
from uuid import uuid4

from app.common.exceptions import ImmutableRecordError


class TenantMixin:
    """Mixin for multi-tenant models that adds tenant_id and ensures tenant isolation"""

    tenant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class BaseMixin(TenantMixin, TimestampMixin):
    """Combines tenant and timestamp functionality for most business models"""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)


class ImmutableMixin:
    """
    Registros append-only: una vez insertados no se pueden modificar ni borrar
    a través del ORM (cierres Z, trail de categorías, bitácora de auditoría).
    """

    @classmethod
    def __declare_last__(cls):
        event.listen(cls, "before_update", _reject_mutation)
        event.listen(cls, "before_delete", _reject_mutation)


def _reject_mutation(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} {getattr(target, 'id', '')} es inmutable"
    )
