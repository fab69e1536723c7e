#storefront/data/models/cart.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON

from storefront.data.database import Base


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    #one cart row per authenticated user
    user_id = Column(String(64), nullable=False, unique=True, index=True)

    items = Column(JSON, nullable=False, default=list)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
