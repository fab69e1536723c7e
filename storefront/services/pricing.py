# storefront/services/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from storefront.domain.schemas import CartItem, DeliveryMethod, PriceBreakdown, SellingMethod
from storefront.utils.settings import SERVICE_FEE_RATE, DELIVERY_FEE, FREE_DELIVERY_THRESHOLD

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(item: CartItem) -> Decimal:
    """Exactly one pricing basis per line."""
    if item.locked:
        #price of a locked fixed-weight unit is already the line total
        return to_money(item.price)
    if item.selling_method == SellingMethod.UNIT:
        return to_money(item.price * item.quantity)
    return to_money(item.price * (item.weight or Decimal("0")))


def cart_subtotal(items: Iterable[CartItem]) -> Decimal:
    return sum((line_total(i) for i in items), Decimal("0.00"))


def price_cart(items: Iterable[CartItem], delivery_method: DeliveryMethod) -> PriceBreakdown:
    subtotal = cart_subtotal(items)
    service_fee = to_money(subtotal * SERVICE_FEE_RATE)

    delivery_fee = Decimal("0.00")
    if DeliveryMethod(delivery_method) == DeliveryMethod.DELIVERY and subtotal < FREE_DELIVERY_THRESHOLD:
        delivery_fee = to_money(DELIVERY_FEE)

    return PriceBreakdown(
        subtotal=subtotal,
        service_fee=service_fee,
        delivery_fee=delivery_fee,
        total=subtotal + service_fee + delivery_fee,
    )
