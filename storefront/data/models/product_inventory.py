from sqlalchemy import Column, String, Numeric

from storefront.data.database import Base


class ProductInventoryModel(Base):
    """Pre-measured unit of a weight_fixed product, removed once sold."""

    __tablename__ = "product_inventory"

    id = Column(String(64), primary_key=True)
    product_id = Column(String(64), nullable=False, index=True)
    weight = Column(Numeric(10, 3), nullable=False)
    weight_unit = Column(String(8), nullable=False, default="kg")
    price = Column(Numeric(12, 2), nullable=False)
