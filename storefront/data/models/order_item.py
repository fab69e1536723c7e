from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Boolean
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderItemModel(Base):
    """Immutable snapshot of a cart line at purchase time."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    inventory_id = Column(String(64), nullable=True)

    name = Column(String(255), nullable=False)
    image = Column(String(512), nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    selling_method = Column(String(20), nullable=False, default="unit")
    quantity = Column(Integer, nullable=False, default=1)
    weight = Column(Numeric(10, 3), nullable=True)
    weight_unit = Column(String(8), nullable=True)
    locked = Column(Boolean, nullable=False, default=False)

    order = relationship("OrderModel", back_populates="items")
