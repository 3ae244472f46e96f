from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from app.common.exceptions import ProductNotFoundError
from app.database.database import get_tenant_query
from app.modules.inventory.models import Product, StockMovement, MovementType

logger = logging.getLogger(__name__)


class InventoryService:
    """Service for inventory operations relevant to the shift closure."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, tenant_id: UUID, product_id: UUID) -> Product:
        product = get_tenant_query(self.db, Product, tenant_id).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError(f"Producto {product_id} no encontrado")
        return product

    def register_waste(
        self,
        tenant_id: UUID,
        product_id: UUID,
        quantity: int,
        reason: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> StockMovement:
        """Registrar una merma: descuenta stock y queda disponible para el cierre Z."""
        if quantity <= 0:
            raise ValueError("La cantidad de merma debe ser mayor a cero")

        product = self.get_product(tenant_id, product_id)
        product.stock = (product.stock or 0) - quantity

        movement = StockMovement(
            tenant_id=tenant_id,
            product_id=product_id,
            type=MovementType.MERMA,
            quantity=-quantity,
            reason=reason,
            created_by=created_by
        )
        self.db.add(movement)
        self.db.commit()
        self.db.refresh(movement)

        logger.info(f"Waste registered: product_id={product_id}, quantity={quantity}")
        return movement
