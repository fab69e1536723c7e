import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Numeric, Boolean, JSON
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _new_order_id() -> str:
    return str(uuid.uuid4())


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_order_id)
    simplified_id = Column(String(16), nullable=False, unique=True, index=True)
    # checkout token the order was created from, one order per token
    staging_token = Column(String(64), nullable=True, unique=True)
    # null for guest orders, those are keyed by phone
    user_id = Column(String(64), nullable=True, index=True)

    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, paid, shipped, delivered, cancelled

    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    phone_number = Column(String(32), nullable=False)
    phone_digits = Column(String(32), nullable=False, index=True)
    shipping_address = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
    )
