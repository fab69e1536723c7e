# storefront/services/checkout_service.py
from datetime import datetime, timezone

from storefront.domain.errors import DuplicateMaterializationError, NotFoundError, ValidationError
from storefront.domain.schemas import (
    CheckoutIn,
    DeliveryMethod,
    MaterializeOut,
    OrderStagingRecord,
    PaymentCode,
    PaymentState,
    ShippingAddress,
    StageOut,
)
from storefront.repos.cart_repo import CartRepository
from storefront.services.order_materializer import OrderMaterializer
from storefront.services.payment_gateway import PaymentGateway
from storefront.services.pricing import price_cart
from storefront.services.staging import OrderStagingBuffer
from storefront.utils.phone import phone_digits
from storefront.utils.settings import PICKUP_LOCATIONS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Checkout -> payment -> confirmation handoff.

    1. stage_order: price the cart and park a snapshot under a token
    2. request_payment: QR code for the staged total
    3. confirm_payment: only a transaction that polls as paid creates the order
    """

    def __init__(
        self,
        cart_repo: CartRepository,
        staging: OrderStagingBuffer,
        gateway: PaymentGateway,
        materializer: OrderMaterializer,
        user_id: str | None = None,
    ):
        self.cart_repo = cart_repo
        self.staging = staging
        self.gateway = gateway
        self.materializer = materializer
        self.user_id = user_id

    def stage_order(self, form: CheckoutIn) -> StageOut:
        self._validate(form)

        items = self.cart_repo.load()
        if not items:
            raise ValidationError("Cart is empty")

        prices = price_cart(items, form.delivery_method)
        address = form.shipping_address or ShippingAddress(full_name=form.full_name)
        if form.delivery_method == DeliveryMethod.PICKUP:
            address = ShippingAddress(full_name=form.full_name.strip(), notes=address.notes)
        else:
            address = address.model_copy(update={"full_name": form.full_name.strip()})

        record = OrderStagingRecord(
            cart_id=self.cart_repo.cart_id(),
            cart_items=items,
            total_price=prices.total,
            subtotal=prices.subtotal,
            service_fee=prices.service_fee,
            delivery_fee=prices.delivery_fee,
            phone_number=form.phone_number.strip(),
            shipping_address=address,
            user_id=self.user_id,
            delivery_method=form.delivery_method,
            pickup_location=form.pickup_location if form.delivery_method == DeliveryMethod.PICKUP else None,
            created_at=datetime.now(timezone.utc),
        )
        token = self.staging.stage(record)

        return StageOut(
            token=token,
            subtotal=prices.subtotal,
            service_fee=prices.service_fee,
            delivery_fee=prices.delivery_fee,
            total_price=prices.total,
        )

    def get_staged(self, token: str) -> OrderStagingRecord:
        record = self.staging.retrieve(token)
        if record.user_id and record.user_id != self.user_id:
            raise PermissionError("Checkout belongs to another user")
        return record

    def request_payment(self, token: str) -> PaymentCode:
        #amount always comes from the staged total, never from the client
        record = self.get_staged(token)
        return self.gateway.request_payment(token, record.total_price)

    def confirm_payment(self, token: str, transaction_id: str) -> MaterializeOut:
        txn = self.gateway.transaction(transaction_id)
        if txn.order_ref != token:
            raise ValidationError("Payment does not belong to this checkout")

        existing = self.staging.consumed_order(token)
        if existing:
            return MaterializeOut(order_id=existing, clear_local_cart=self.user_id is None, already_processed=True)

        status = self.gateway.poll_status(transaction_id)
        if status.status != PaymentState.PAID:
            raise ValidationError(f"Payment is {status.status.value}, order not created")

        try:
            self.get_staged(token)
        except NotFoundError:
            logger.error(f"Transaction {transaction_id} is paid but staging {token} is gone")
            self.materializer.notifications.send_reconciliation_alert(token, transaction_id, "order details lost")
            raise

        try:
            result = self.materializer.materialize(token, transaction_id)
        except DuplicateMaterializationError as e:
            logger.info(f"Duplicate confirmation for {token}, order {e.order_id}")
            return MaterializeOut(order_id=e.order_id, clear_local_cart=self.user_id is None, already_processed=True)

        if result.clear_local_cart:
            self.cart_repo.clear()
        return result

    @staticmethod
    def _validate(form: CheckoutIn) -> None:
        if not form.full_name or not form.full_name.strip():
            raise ValidationError("Full name is required")

        digits = phone_digits(form.phone_number)
        if not 7 <= len(digits) <= 15:
            raise ValidationError("Phone number must have between 7 and 15 digits")

        if form.delivery_method == DeliveryMethod.DELIVERY:
            address = form.shipping_address
            has_location = address is not None and (
                (address.city and address.address) or (address.latitude is not None and address.longitude is not None)
            )
            if not has_location:
                raise ValidationError("Delivery needs an address with a city, or map coordinates")
        elif form.pickup_location not in PICKUP_LOCATIONS:
            raise ValidationError("Unknown pickup location")
