from sqlalchemy.orm import Session
from pydantic import ValidationError
from typing import Any, Optional
from uuid import UUID
import logging

from app.common.exceptions import TenantNotFoundError
from app.modules.tenants.models import Tenant
from app.modules.tenants.schemas import TierSettings

logger = logging.getLogger(__name__)


def load_tier_settings(raw: Optional[Any]) -> TierSettings:
    """Parsea el JSON de tier_settings; si es inválido se usan los valores por defecto."""
    if not raw:
        return TierSettings()
    try:
        return TierSettings.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"tier_settings inválido, usando valores por defecto: {e}")
        return TierSettings()


class TenantService:
    def __init__(self, db: Session):
        self.db = db

    def get_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = self.db.get(Tenant, tenant_id)
        if not tenant:
            raise TenantNotFoundError(f"Tenant {tenant_id} no encontrado")
        return tenant

    def get_tier_settings(self, tenant_id: UUID) -> TierSettings:
        return load_tier_settings(self.get_tenant(tenant_id).tier_settings)
