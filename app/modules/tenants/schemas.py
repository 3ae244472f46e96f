from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import Optional

from app.core.config import settings


class TierSettings(BaseModel):
    """
    Configuración de categorías de clientes del tenant.

    Se persiste como JSON en tenants.tier_settings con claves camelCase
    (vipDiscount, vipThreshold, socioDiscount); ambos estilos se aceptan.

    - vip_discount: % de descuento sobre el tiempo para VIP (modelo COMERCIAL).
      None o 0 = usar el descuento guardado en el socio.
    - socio_discount: % de descuento sobre el tiempo para SOCIO (modelo COMERCIAL).
      None o 0 = usar el descuento guardado en el socio.
    - vip_threshold: gasto acumulado a partir del cual se sugiere subir a VIP.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vip_discount: Optional[Decimal] = Field(None, alias="vipDiscount", ge=0, le=100)
    socio_discount: Optional[Decimal] = Field(None, alias="socioDiscount", ge=0, le=100)
    vip_threshold: Decimal = Field(
        default_factory=lambda: settings.DEFAULT_VIP_THRESHOLD,
        alias="vipThreshold",
        ge=0
    )
