# storefront/repos/order_repo.py
from typing import List, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.data.models.product_inventory import ProductInventoryModel
from storefront.utils.phone import MIN_SUFFIX_DIGITS


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def _select(self):
        return select(OrderModel).options(selectinload(OrderModel.items))

    def add(self, order: OrderModel) -> OrderModel:
        """Adds without committing, the caller owns the transaction."""
        self.db.add(order)
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.execute(self._select().where(OrderModel.id == order_id)).scalar_one_or_none()

    def by_simplified_id(self, simplified_id: str) -> OrderModel | None:
        return self.db.execute(
            self._select().where(OrderModel.simplified_id == simplified_id)
        ).scalar_one_or_none()

    def by_staging_token(self, token: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.staging_token == token)
        ).scalar_one_or_none()

    def by_simplified_id_ci(self, simplified_id: str) -> List[OrderModel]:
        return list(self.db.execute(
            self._select().where(func.upper(OrderModel.simplified_id) == simplified_id.upper())
        ).scalars().all())

    def by_simplified_prefix(self, prefix: str, limit: int = 2) -> List[OrderModel]:
        return list(self.db.execute(
            self._select()
            .where(func.upper(OrderModel.simplified_id).like(f"{prefix.upper()}%"))
            .limit(limit)
        ).scalars().all())

    def list_by_user(self, user_id: str) -> List[OrderModel]:
        return list(self.db.execute(
            self._select().where(OrderModel.user_id == user_id).order_by(OrderModel.created_at.desc())
        ).scalars().all())

    def list_by_phone_candidates(self, digits: str) -> List[OrderModel]:
        """Orders whose stored digits share the caller's last digits; exact matching is done by the caller."""
        tail = digits[-MIN_SUFFIX_DIGITS:]
        return list(self.db.execute(
            self._select()
            .where(or_(OrderModel.phone_digits == digits, OrderModel.phone_digits.like(f"%{tail}")))
            .order_by(OrderModel.created_at.desc())
        ).scalars().all())

    def paginate(self, page: int, limit: int, query: str | None = None) -> Tuple[List[OrderModel], int]:
        stmt = self._select()
        count_stmt = select(func.count(OrderModel.id))
        if query:
            like = f"%{query}%"
            cond = or_(
                OrderModel.id.like(like),
                OrderModel.simplified_id.ilike(like),
                OrderModel.phone_number.like(like),
                OrderModel.status == query.lower(),
            )
            stmt = stmt.where(cond)
            count_stmt = count_stmt.where(cond)

        total = self.db.execute(count_stmt).scalar_one()
        rows = self.db.execute(
            stmt.order_by(OrderModel.created_at.desc()).offset((page - 1) * limit).limit(limit)
        ).scalars().all()
        return list(rows), total

    def simplified_id_taken(self, simplified_id: str) -> bool:
        return self.db.execute(
            select(OrderModel.id).where(OrderModel.simplified_id == simplified_id)
        ).first() is not None

    def delete_order(self, order: OrderModel) -> None:
        self.db.delete(order)
        self.commit()

    def remove_inventory_units(self, inventory_ids: List[str]) -> int:
        if not inventory_ids:
            return 0
        result = self.db.execute(delete(ProductInventoryModel).where(ProductInventoryModel.id.in_(inventory_ids)))
        self.commit()
        return result.rowcount or 0

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
