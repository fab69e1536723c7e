# storefront/services/cart_service.py
from decimal import Decimal
from typing import List

from storefront.domain.errors import DuplicateItemError, ImmutableWeightError, NotFoundError, ValidationError
from storefront.domain.schemas import Cart, CartItem, SellingMethod
from storefront.repos.cart_repo import CartRepository
from storefront.services.pricing import cart_subtotal
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

MIN_WEIGHT = Decimal("0.1")


class CartService:
    """
    Cart use cases for both guests and signed-in shoppers.
    Commands (add, update, remove, clear, merge) return the whole cart with a fresh total.
    """

    def __init__(self, repo: CartRepository):
        self.repo = repo

    #query
    def get_cart(self) -> Cart:
        return self._as_cart(self.repo.load())

    #commands
    def add_item(self, item: CartItem) -> Cart:
        item = self._normalize(item)
        items = self.repo.load()
        existing = next((i for i in items if i.id == item.id), None)

        if existing is None:
            logger.info(f"Adding {item.id} ({item.selling_method.value}) to cart {self.repo.cart_id()}")
            items.append(item)
        elif item.selling_method != existing.selling_method:
            #one pricing basis per line
            raise ValidationError(
                f"Item {item.id} is already in the cart sold by {existing.selling_method.value}"
            )
        elif item.locked or existing.locked:
            raise DuplicateItemError(f"Unit {item.id} is already in the cart")
        elif item.selling_method == SellingMethod.UNIT:
            new_qty = existing.quantity + item.quantity
            logger.info(f"Item {item.id} already in cart, quantity {existing.quantity} -> {new_qty}")
            items = self._replace(items, existing.model_copy(update={"quantity": new_qty, "price": item.price}))
        else:
            new_weight = (existing.weight or Decimal("0")) + item.weight
            logger.info(f"Item {item.id} already in cart, weight {existing.weight} -> {new_weight}")
            items = self._replace(items, existing.model_copy(update={"weight": new_weight, "price": item.price}))

        return self._save(items)

    def update_quantity(self, item_id: str, quantity: int) -> Cart:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        items = self.repo.load()
        item = self._find(items, item_id)
        if item.selling_method != SellingMethod.UNIT:
            raise ValidationError(f"Item {item_id} is sold by weight, update its weight instead")

        return self._save(self._replace(items, item.model_copy(update={"quantity": quantity})))

    def update_weight(self, item_id: str, weight: Decimal) -> Cart:
        weight = Decimal(str(weight))
        if weight < MIN_WEIGHT:
            raise ValidationError(f"Weight must be at least {MIN_WEIGHT}")

        items = self.repo.load()
        item = self._find(items, item_id)
        if item.locked:
            raise ImmutableWeightError(f"Item {item_id} has a fixed weight")
        if item.selling_method == SellingMethod.UNIT:
            raise ValidationError(f"Item {item_id} is sold by unit, update its quantity instead")

        return self._save(self._replace(items, item.model_copy(update={"weight": weight})))

    def remove_item(self, item_id: str) -> Cart:
        items = self.repo.load()
        remaining = [i for i in items if i.id != item_id]
        if len(remaining) == len(items):
            raise NotFoundError(f"Item {item_id} is not in the cart")

        logger.info(f"Removing {item_id} from cart {self.repo.cart_id()}")
        return self._save(remaining)

    def clear(self) -> Cart:
        logger.info(f"Clearing cart {self.repo.cart_id()}")
        self.repo.clear()
        return Cart()

    @staticmethod
    def merge_guest_cart(guest: CartRepository, user: CartRepository) -> Cart:
        """
        Called on login. A non-empty guest cart replaces the user's cart as a whole
        (no per-item union) and is then cleared.
        """
        guest_items = guest.load()
        if not guest_items:
            return CartService(user).get_cart()

        logger.info(f"Merging guest cart {guest.cart_id()} into {user.cart_id()} ({len(guest_items)} items)")
        user.save(guest_items)
        guest.clear()
        return CartService(user).get_cart()

    # helpers

    def _save(self, items: List[CartItem]) -> Cart:
        self.repo.save(items)
        return self._as_cart(items)

    @staticmethod
    def _as_cart(items: List[CartItem]) -> Cart:
        return Cart(items=items, total_price=cart_subtotal(items))

    @staticmethod
    def _find(items: List[CartItem], item_id: str) -> CartItem:
        item = next((i for i in items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} is not in the cart")
        return item

    @staticmethod
    def _replace(items: List[CartItem], updated: CartItem) -> List[CartItem]:
        return [updated if i.id == updated.id else i for i in items]

    @staticmethod
    def _normalize(item: CartItem) -> CartItem:
        if item.selling_method == SellingMethod.UNIT:
            if item.quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            return item.model_copy(update={"weight": None, "weight_unit": None, "locked": False})

        if item.weight is None or item.weight < MIN_WEIGHT:
            raise ValidationError(f"Weight must be at least {MIN_WEIGHT}")

        update = {"quantity": 1, "locked": False}
        if item.selling_method == SellingMethod.WEIGHT_FIXED:
            #a pre-measured unit is frozen as soon as it is selected
            update["locked"] = True
            update["inventory_id"] = item.inventory_id or item.id
        return item.model_copy(update=update)
