"""
Tests para registro de mermas
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from sqlalchemy.orm import Session

from app.common.exceptions import ProductNotFoundError
from app.modules.inventory.models import MovementType, Product
from app.modules.inventory.service import InventoryService


@pytest.fixture
def chalk(db_session: Session, sample_tenant):
    product = Product(
        tenant_id=sample_tenant.id, name="Tiza azul", price=Decimal("500"),
        cost_price=Decimal("200"), stock=20
    )
    db_session.add(product)
    db_session.commit()
    return product


class TestRegisterWaste:

    def test_waste_decrements_stock(self, db_session: Session, sample_tenant, chalk):
        movement = InventoryService(db_session).register_waste(
            sample_tenant.id, chalk.id, 3, reason="Caja rota", created_by="bodega"
        )

        assert movement.type == MovementType.MERMA
        assert movement.quantity == -3
        db_session.refresh(chalk)
        assert chalk.stock == 17

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, db_session: Session, sample_tenant, chalk, quantity):
        with pytest.raises(ValueError):
            InventoryService(db_session).register_waste(sample_tenant.id, chalk.id, quantity)

    def test_product_of_other_tenant(self, db_session: Session, comercial_tenant, chalk):
        with pytest.raises(ProductNotFoundError):
            InventoryService(db_session).register_waste(comercial_tenant.id, chalk.id, 1)

    def test_unknown_product(self, db_session: Session, sample_tenant):
        with pytest.raises(ProductNotFoundError):
            InventoryService(db_session).get_product(sample_tenant.id, uuid4())
