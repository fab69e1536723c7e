# storefront/repos/cart_repo.py
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.domain.schemas import CartItem
from storefront.services.pricing import cart_subtotal


class CartItemMapper:
    """
    Persistence boundary for cart items.
    Rows are written in snake_case only; older rows written by the web client
    may still carry camelCase keys, those are translated here and nowhere else.
    """

    LEGACY_KEYS = {
        "sellingMethod": "selling_method",
        "weightUnit": "weight_unit",
        "productId": "product_id",
        "inventoryId": "inventory_id",
    }

    @classmethod
    def to_row(cls, item: CartItem) -> Dict[str, Any]:
        return item.model_dump(mode="json")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> CartItem:
        data = {cls.LEGACY_KEYS.get(k, k): v for k, v in row.items()}
        #rows stored by the old server actions keyed the product as product_id
        if "id" not in data and data.get("product_id"):
            data["id"] = data["product_id"]
        if data.get("quantity") is None:
            data["quantity"] = 1
        return CartItem.model_validate(data)


class CartRepository(ABC):
    """Where a shopper's cart lives. Picked once per request from the auth state."""

    @abstractmethod
    def cart_id(self) -> str: ...

    @abstractmethod
    def load(self) -> List[CartItem]: ...

    @abstractmethod
    def save(self, items: List[CartItem]) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


class GuestCartStore:
    """Process-local guest carts keyed by session id, dropped on restart."""

    def __init__(self):
        self._carts: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._carts.get(session_id, []))

    def put(self, session_id: str, rows: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._carts[session_id] = list(rows)

    def drop(self, session_id: str) -> None:
        with self._lock:
            self._carts.pop(session_id, None)


class LocalCartRepository(CartRepository):
    def __init__(self, store: GuestCartStore, session_id: str):
        self.store = store
        self.session_id = session_id

    def cart_id(self) -> str:
        return f"guest:{self.session_id}"

    def load(self) -> List[CartItem]:
        return [CartItemMapper.from_row(r) for r in self.store.get(self.session_id)]

    def save(self, items: List[CartItem]) -> None:
        self.store.put(self.session_id, [CartItemMapper.to_row(i) for i in items])

    def clear(self) -> None:
        self.store.drop(self.session_id)


class RemoteCartRepository(CartRepository):
    """One `carts` row per user, whole `items` list written at once (last write wins)."""

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def _row(self) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.user_id == self.user_id)
        ).scalar_one_or_none()

    def cart_id(self) -> str:
        row = self._row()
        return str(row.id) if row else f"user:{self.user_id}"

    def load(self) -> List[CartItem]:
        row = self._row()
        if not row or not row.items:
            return []
        return [CartItemMapper.from_row(r) for r in row.items]

    def save(self, items: List[CartItem]) -> None:
        rows = [CartItemMapper.to_row(i) for i in items]
        #total is always recomputed here, never taken from the client
        total = cart_subtotal(items)

        row = self._row()
        if row is None:
            row = CartModel(user_id=self.user_id, items=rows, total_price=total)
            self.db.add(row)
        else:
            row.items = rows
            row.total_price = total
        self.commit()

    def clear(self) -> None:
        row = self._row()
        if row is not None:
            self.db.delete(row)
            self.commit()

    def total_price(self) -> Decimal:
        row = self._row()
        return Decimal(row.total_price) if row else Decimal("0.00")

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
