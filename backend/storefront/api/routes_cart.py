import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from storefront.api.deps import optional_identity, require_user
from storefront.config import settings
from storefront.db import get_db
from storefront.schemas.cart_schema import (
    AddItemIn,
    CartOut,
    Failure,
    Success,
    UpdateItemIn,
)
from storefront.services.cart_service import CartIdentity, CartService

router = APIRouter(prefix="/api/cart", tags=["cart"])

ERROR_RESPONSES = {
    400: {"model": Failure},
    401: {"model": Failure},
    404: {"model": Failure},
    409: {"model": Failure},
    422: {"model": Failure},
}


def _ok(view: dict, message: Optional[str] = None) -> Success[CartOut]:
    return Success[CartOut](data=CartOut.model_validate(view), message=message)


def _writer_identity(identity: Optional[CartIdentity], response: Response) -> CartIdentity:
    # first write from an anonymous visitor opens a guest session
    if identity is not None:
        return identity
    session_id = uuid.uuid4().hex
    response.set_cookie(
        settings.CART_SESSION_COOKIE, session_id, httponly=True, samesite="lax"
    )
    return CartIdentity.guest(session_id)


@router.get("", summary="Get cart", response_model=Success[CartOut], responses=ERROR_RESPONSES)
def get_cart(
    identity: Optional[CartIdentity] = Depends(optional_identity),
    db: Session = Depends(get_db),
):
    if identity is None:
        return _ok(CartOut().model_dump())
    return _ok(CartService(db).get_cart(identity))


@router.post("/add", summary="Add item to cart", response_model=Success[CartOut], responses=ERROR_RESPONSES)
def add_item(
    payload: AddItemIn,
    response: Response,
    identity: Optional[CartIdentity] = Depends(optional_identity),
    db: Session = Depends(get_db),
):
    identity = _writer_identity(identity, response)
    view = CartService(db).add_item(identity, payload.product_id, payload.quantity)
    return _ok(view, "Item added to cart successfully")


@router.put("/update", summary="Update item quantity", response_model=Success[CartOut], responses=ERROR_RESPONSES)
def update_item(
    payload: UpdateItemIn,
    response: Response,
    identity: Optional[CartIdentity] = Depends(optional_identity),
    db: Session = Depends(get_db),
):
    identity = _writer_identity(identity, response)
    view = CartService(db).update_item(identity, payload.product_id, payload.quantity)
    return _ok(view, "Cart updated")


@router.delete("/remove/{product_id}", summary="Remove item", response_model=Success[CartOut], responses=ERROR_RESPONSES)
def remove_item(
    product_id: int,
    identity: Optional[CartIdentity] = Depends(optional_identity),
    db: Session = Depends(get_db),
):
    if identity is None:
        return _ok(CartOut().model_dump(), "Item removed")
    return _ok(CartService(db).remove_item(identity, product_id), "Item removed")


@router.delete("/clear", summary="Clear cart", response_model=Success[CartOut], responses=ERROR_RESPONSES)
def clear_cart(
    identity: Optional[CartIdentity] = Depends(optional_identity),
    db: Session = Depends(get_db),
):
    if identity is None:
        return _ok(CartOut().model_dump(), "Cart cleared")
    return _ok(CartService(db).clear_cart(identity), "Cart cleared")


@router.post("/merge", summary="Merge guest cart into the user's cart", response_model=Success[CartOut], responses=ERROR_RESPONSES)
def merge(
    request: Request,
    response: Response,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    session_id = request.cookies.get(settings.CART_SESSION_COOKIE)
    if not session_id:
        return _ok(svc.get_cart(CartIdentity.user(user_id)), "No guest cart to merge")
    view = svc.merge_guest_into_user(session_id, user_id)
    response.delete_cookie(settings.CART_SESSION_COOKIE)
    return _ok(view, "Guest cart merged")
