# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import List, Optional
from decimal import Decimal
from datetime import datetime
from enum import Enum

from storefront.domain.order_status import OrderStatus, status_flags


class SellingMethod(str, Enum):
    UNIT = "unit"
    WEIGHT_CUSTOM = "weight_custom"  # buyer picks the weight
    WEIGHT_FIXED = "weight_fixed"  # pre-measured inventory unit


class DeliveryMethod(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class PaymentState(str, Enum):
    REQUESTING = "requesting"
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentState.PAID, PaymentState.EXPIRED, PaymentState.ERROR)


# ---------------------------------------------------------------- cart


class CartItem(BaseModel):
    """One purchasable line. `id` is the product id, or the inventory unit id for weight_fixed."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0, description="Unit price, price per weight unit, or final price of a locked unit")
    image: Optional[str] = None
    selling_method: SellingMethod = SellingMethod.UNIT
    quantity: int = 1
    weight: Optional[Decimal] = None
    weight_unit: Optional[str] = None
    locked: bool = False
    product_id: Optional[str] = None
    inventory_id: Optional[str] = None


class Cart(BaseModel):
    items: List[CartItem] = []
    total_price: Decimal = Decimal("0.00")


class QuantityIn(BaseModel):
    quantity: int


class WeightIn(BaseModel):
    weight: Decimal


# ---------------------------------------------------------------- checkout


class PriceBreakdown(BaseModel):
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    total: Decimal


class ShippingAddress(BaseModel):
    full_name: str
    city: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None


class CheckoutIn(BaseModel):
    """Checkout form submission. Items are always read from the shopper's cart."""

    full_name: str
    phone_number: str
    delivery_method: DeliveryMethod
    shipping_address: Optional[ShippingAddress] = None
    pickup_location: Optional[str] = None


class OrderStagingRecord(BaseModel):
    cart_id: str
    cart_items: List[CartItem]
    total_price: Decimal
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    phone_number: str
    shipping_address: Optional[ShippingAddress] = None
    user_id: Optional[str] = None
    delivery_method: DeliveryMethod
    pickup_location: Optional[str] = None
    created_at: datetime


class StageOut(BaseModel):
    token: str
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    total_price: Decimal


class ConfirmIn(BaseModel):
    transaction_id: str = Field(..., min_length=1)


class MaterializeOut(BaseModel):
    order_id: Optional[str] = None
    clear_local_cart: bool = False
    already_processed: bool = False


# ---------------------------------------------------------------- payments


class PaymentRequestIn(BaseModel):
    order_ref: str = Field(..., min_length=1)
    amount: Decimal
    currency: Optional[str] = None


class PaymentCode(BaseModel):
    transaction_id: str
    qr_image: str
    qr_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_mock: bool = False
    message: Optional[str] = None


class PaymentStatus(BaseModel):
    status: PaymentState
    message: Optional[str] = None
    is_mock: bool = False


class PaymentTransaction(BaseModel):
    transaction_id: str
    qr_id: Optional[str] = None
    order_ref: str
    amount: Decimal
    currency: str
    expires_at: Optional[datetime] = None
    status: PaymentState = PaymentState.PENDING
    is_mock: bool = False
    poll_count: int = 0
    created_at: datetime


class QRDetail(BaseModel):
    id: str
    amount: Decimal = Decimal("0")
    currency: Optional[str] = None
    gloss: Optional[str] = None
    status: PaymentState
    creation_date: Optional[str] = None
    expiration_date: Optional[str] = None
    payment_date: Optional[str] = None
    single_use: Optional[bool] = None


class ReconciliationSummary(BaseModel):
    total_amount: Decimal = Decimal("0")
    paid: int = 0
    pending: int = 0
    expired: int = 0
    error: int = 0


class ReconciliationReport(BaseModel):
    date: str
    total_qrs: int
    qr_details: List[QRDetail]
    summary: ReconciliationSummary


class QRCheckIn(BaseModel):
    qr_ids: List[str] = Field(..., min_length=1)


class QRCheckResult(BaseModel):
    qr_id: str
    status: PaymentState
    message: Optional[str] = None


# ---------------------------------------------------------------- orders


class OrderItemOut(BaseModel):
    product_id: str
    inventory_id: Optional[str] = None
    name: str
    image: Optional[str] = None
    price: Decimal
    selling_method: SellingMethod
    quantity: int
    weight: Optional[Decimal] = None
    weight_unit: Optional[str] = None
    locked: bool = False

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    simplified_id: str
    user_id: Optional[str] = None
    total_price: Decimal
    status: OrderStatus
    is_paid: bool
    paid_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    phone_number: str
    shipping_address: Optional[dict] = None
    created_at: datetime
    items: List[OrderItemOut] = []

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def flags(self) -> dict:
        #admin UI flags are derived from status only
        return status_flags(self.status)


class OrderSummaryOut(BaseModel):
    """Guest history row. Address and items stay behind /orders/verify."""
    id: str
    simplified_id: str
    status: OrderStatus
    total_price: Decimal
    is_paid: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderPage(BaseModel):
    data: List[OrderOut]
    total_pages: int
    current_page: int
    total_items: int


class StatusIn(BaseModel):
    status: OrderStatus


class PaidIn(BaseModel):
    is_paid: bool


class DeliveredIn(BaseModel):
    is_delivered: bool


class ActionResult(BaseModel):
    success: bool
    message: str
    order: Optional[OrderOut] = None


class VerifyOrderIn(BaseModel):
    order_id: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)


class VerifyOrderOut(BaseModel):
    verified: bool
    order_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    message: Optional[str] = None
