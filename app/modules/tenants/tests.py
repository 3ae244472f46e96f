"""
Tests para la configuración tipada del tenant
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from sqlalchemy.orm import Session

from app.common.exceptions import TenantNotFoundError
from app.modules.tenants.schemas import TierSettings
from app.modules.tenants.service import TenantService, load_tier_settings


class TestTierSettings:

    def test_camel_case_json(self):
        settings = load_tier_settings({"vipDiscount": 15, "vipThreshold": 80000, "socioDiscount": 30})

        assert settings.vip_discount == Decimal("15")
        assert settings.socio_discount == Decimal("30")
        assert settings.vip_threshold == Decimal("80000")

    def test_defaults(self):
        settings = load_tier_settings(None)

        assert settings.vip_discount is None
        assert settings.socio_discount is None
        assert settings.vip_threshold == Decimal("50000")

    def test_invalid_json_falls_back_to_defaults(self):
        settings = load_tier_settings({"vipDiscount": 250})

        assert settings == TierSettings()

    def test_unknown_keys_are_ignored(self):
        settings = load_tier_settings({"vipDiscount": 10, "theme": "dark"})

        assert settings.vip_discount == Decimal("10")


class TestTenantService:

    def test_tier_settings_of_tenant(self, db_session: Session, comercial_tenant):
        settings = TenantService(db_session).get_tier_settings(comercial_tenant.id)

        assert settings.vip_threshold == Decimal("40000")

    def test_unknown_tenant(self, db_session: Session):
        with pytest.raises(TenantNotFoundError):
            TenantService(db_session).get_tenant(uuid4())
