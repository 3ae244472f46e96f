from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, Numeric, Enum, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import enum

from app.common.mixins import BaseMixin


class MovementType(str, enum.Enum):
    SALE = "SALE"              # Venta en mesa/barra
    PURCHASE = "PURCHASE"      # Reposición
    MERMA = "MERMA"            # Merma / pérdida (se descuenta en el cierre Z)
    ADJUSTMENT = "ADJUSTMENT"  # Ajuste de inventario


class Product(Base, BaseMixin):
    __tablename__ = "products"

    name = Column(String(200), nullable=False, index=True)
    price = Column(Numeric(15, 2), nullable=False)  # Precio al público
    cost_price = Column(Numeric(15, 2), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    movements = relationship("StockMovement", back_populates="product")


class StockMovement(Base, BaseMixin):
    __tablename__ = "stock_movements"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    type = Column(Enum(MovementType), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # Can be positive or negative
    reason = Column(String(255), nullable=True)
    created_by = Column(String(100), nullable=True)
    # Merma ya descontada en un cierre Z
    daily_balance_id = Column(Uuid(as_uuid=True), ForeignKey("daily_balances.id"), nullable=True, index=True)

    product = relationship("Product", back_populates="movements")
