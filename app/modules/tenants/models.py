"""
Modelo Tenant: cada club o bar de billar es una unidad de negocio aislada.

La configuración fiscal y de precios vive en el tenant; el JSON de
tier_settings se lee siempre a través de TierSettings (ver schemas.py).
"""
from sqlalchemy import Column, String, Boolean, DateTime, Numeric, JSON, Enum, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from uuid import uuid4
import enum

from app.database.database import Base


class BusinessModel(str, enum.Enum):
    """Régimen de descuentos del tenant"""
    CLUB_SOCIOS = "CLUB_SOCIOS"  # Descuento solo para SOCIO con cuota al día
    COMERCIAL = "COMERCIAL"      # Descuentos VIP/SOCIO sin cuota mensual


class Tenant(Base):
    __tablename__ = "tenants"
    __table_args__ = (UniqueConstraint("slug", name="uq_tenant_slug"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    business_model = Column(Enum(BusinessModel), nullable=False, default=BusinessModel.COMERCIAL)
    base_rate = Column(Numeric(15, 2), nullable=False, default=0)  # Tarifa por hora

    # Configuración fiscal
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)  # 0.0 - 1.0
    tax_name = Column(String(20), nullable=False, default="IVA")
    is_tax_exempt = Column(Boolean, nullable=False, default=False)

    currency_code = Column(String(3), nullable=False, default="CLP")
    currency_symbol = Column(String(5), nullable=False, default="$")

    tier_settings = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
