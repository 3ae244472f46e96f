from sqlalchemy import Column, String, Text, DateTime, JSON, Uuid
from sqlalchemy.sql import func
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import ImmutableMixin


class SystemLog(ImmutableMixin, Base):
    """
    Bitácora append-only de eventos de negocio y seguridad.

    Aquí terminan las advertencias (membresía vencida, impuesto mal
    configurado), las alertas críticas (descuento manipulado, descuadre de
    caja) y los sellos de integridad de los cierres Z.
    """
    __tablename__ = "system_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    level = Column(String(10), nullable=False, index=True)
    type = Column(String(60), nullable=False, index=True)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
