from decimal import Decimal

import pytest

from conftest import fixed_item, unit_item, weight_item
from storefront.data.models.cart import CartModel
from storefront.domain.errors import DuplicateItemError, ImmutableWeightError, NotFoundError, ValidationError
from storefront.repos.cart_repo import CartItemMapper, GuestCartStore, LocalCartRepository, RemoteCartRepository
from storefront.services.cart_service import CartService


@pytest.fixture
def guest_repo():
    return LocalCartRepository(GuestCartStore(), "sess-1")


@pytest.fixture
def svc(guest_repo):
    return CartService(guest_repo)


def test_adding_same_unit_product_accumulates_quantity(svc):
    svc.add_item(unit_item(quantity=1))
    cart = svc.add_item(unit_item(quantity=2))

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.total_price == Decimal("300.00")


def test_custom_weight_accumulates_weight(svc):
    svc.add_item(weight_item(weight="1.0"))
    cart = svc.add_item(weight_item(weight="0.5"))

    assert cart.items[0].weight == Decimal("1.5")


def test_fixed_weight_unit_is_locked_and_unique(svc):
    cart = svc.add_item(fixed_item(id="U1"))
    assert cart.items[0].locked is True
    assert cart.items[0].inventory_id == "U1"

    with pytest.raises(DuplicateItemError):
        svc.add_item(fixed_item(id="U1"))


def test_locked_weight_cannot_change(svc):
    svc.add_item(fixed_item(id="U1"))

    with pytest.raises(ImmutableWeightError):
        svc.update_weight("U1", Decimal("2"))


def test_update_quantity_rules(svc):
    svc.add_item(unit_item())
    svc.add_item(weight_item())

    assert svc.update_quantity("P1", 5).items[0].quantity == 5
    with pytest.raises(ValidationError):
        svc.update_quantity("P1", 0)
    with pytest.raises(ValidationError):
        svc.update_quantity("P2", 2)
    with pytest.raises(NotFoundError):
        svc.update_quantity("missing", 1)


def test_update_weight_minimum(svc):
    svc.add_item(weight_item())

    with pytest.raises(ValidationError):
        svc.update_weight("P2", Decimal("0.05"))
    cart = svc.update_weight("P2", Decimal("2"))
    assert cart.total_price == Decimal("80.00")


def test_remove_and_clear(svc):
    svc.add_item(unit_item(id="A"))
    svc.add_item(unit_item(id="B"))

    cart = svc.remove_item("A")
    assert [i.id for i in cart.items] == ["B"]
    with pytest.raises(NotFoundError):
        svc.remove_item("A")

    assert svc.clear().items == []
    assert svc.get_cart().items == []


def test_negative_quantity_rejected(svc):
    with pytest.raises(ValidationError):
        svc.add_item(unit_item(quantity=-1))


def test_remote_cart_persists_recomputed_total(db):
    repo = RemoteCartRepository(db, "user-1")
    CartService(repo).add_item(unit_item(price="10", quantity=3))

    row = db.query(CartModel).filter_by(user_id="user-1").one()
    assert Decimal(row.total_price) == Decimal("30.00")
    assert row.items[0]["selling_method"] == "unit"


def test_merge_replaces_user_cart_and_empties_guest(db, guest_repo):
    user_repo = RemoteCartRepository(db, "user-1")
    CartService(user_repo).add_item(unit_item(id="OLD"))
    CartService(guest_repo).add_item(unit_item(id="NEW", quantity=4))

    cart = CartService.merge_guest_cart(guest_repo, user_repo)

    assert [(i.id, i.quantity) for i in cart.items] == [("NEW", 4)]
    assert guest_repo.load() == []


def test_merge_with_empty_guest_keeps_user_cart(db, guest_repo):
    user_repo = RemoteCartRepository(db, "user-1")
    CartService(user_repo).add_item(unit_item(id="OLD"))

    cart = CartService.merge_guest_cart(guest_repo, user_repo)

    assert [i.id for i in cart.items] == ["OLD"]


def test_mapper_reads_legacy_camel_case_rows():
    item = CartItemMapper.from_row({
        "productId": "P9", "name": "Lomo", "price": "55", "sellingMethod": "weight_custom",
        "weight": "0.8", "weightUnit": "kg",
    })

    assert item.id == "P9"
    assert item.selling_method.value == "weight_custom"
    assert item.quantity == 1


def test_same_id_with_other_selling_method_is_rejected(svc):
    svc.add_item(unit_item(id="P1", price="100", quantity=2))

    with pytest.raises(ValidationError):
        svc.add_item(weight_item(id="P1", price="40", weight="1.5"))

    line = svc.get_cart().items[0]
    assert (line.selling_method.value, line.quantity, line.weight, line.price) == ("unit", 2, None, Decimal("100"))
    assert svc.get_cart().total_price == Decimal("200.00")
