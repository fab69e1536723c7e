# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import Identity, get_cart_repo, guest_carts, require_user
from storefront.data.database import get_db
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.schemas import Cart, CartItem, QuantityIn, WeightIn
from storefront.repos.cart_repo import CartRepository, LocalCartRepository, RemoteCartRepository
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(repo: CartRepository):
    return CartService(repo)


@router.get("", response_model=Cart)
def get_cart(repo: CartRepository = Depends(get_cart_repo)):
    return get_service(repo).get_cart()


@router.post("/items", response_model=Cart)
def add_item(payload: CartItem, repo: CartRepository = Depends(get_cart_repo)):
    svc = get_service(repo)
    try:
        return svc.add_item(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/items/{item_id}/quantity", response_model=Cart)
def update_quantity(item_id: str, payload: QuantityIn, repo: CartRepository = Depends(get_cart_repo)):
    svc = get_service(repo)
    try:
        return svc.update_quantity(item_id, payload.quantity)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/items/{item_id}/weight", response_model=Cart)
def update_weight(item_id: str, payload: WeightIn, repo: CartRepository = Depends(get_cart_repo)):
    svc = get_service(repo)
    try:
        return svc.update_weight(item_id, payload.weight)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/items/{item_id}", response_model=Cart)
def remove_item(item_id: str, repo: CartRepository = Depends(get_cart_repo)):
    svc = get_service(repo)
    try:
        return svc.remove_item(item_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("", response_model=Cart)
def clear_cart(repo: CartRepository = Depends(get_cart_repo)):
    return get_service(repo).clear()


@router.post("/merge", response_model=Cart)
def merge_cart(
    identity: Identity = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Login hook: moves the session's guest cart into the user's cart."""
    user = RemoteCartRepository(db, identity.user_id)
    if not identity.session_id:
        return get_service(user).get_cart()
    guest = LocalCartRepository(guest_carts(), identity.session_id)
    return CartService.merge_guest_cart(guest, user)
