import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.models.cart import Cart
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.utils.transactions import atomic

log = logging.getLogger("storefront.cart")


class CartError(Exception):
    status_code = 400


class CartValidationError(CartError):
    status_code = 400


class ProductNotFoundError(CartError):
    status_code = 404


class CartNotFoundError(CartError):
    status_code = 404


class CartConflictError(CartError):
    """The cart changed underneath us (version mismatch or a concurrent create)."""

    status_code = 409


@dataclass(frozen=True)
class CartIdentity:
    """Who owns a cart: a guest session token or an authenticated user id, never both."""

    session_id: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        if (self.session_id is None) == (self.user_id is None):
            raise ValueError("CartIdentity needs exactly one of session_id / user_id")

    @classmethod
    def guest(cls, session_id: str) -> "CartIdentity":
        return cls(session_id=session_id)

    @classmethod
    def user(cls, user_id: str) -> "CartIdentity":
        return cls(user_id=str(user_id))

    @property
    def is_guest(self) -> bool:
        return self.session_id is not None


def cart_view(cart: Optional[Cart], identity: CartIdentity) -> Dict:
    if cart is None:
        return {
            "id": None,
            "session_id": identity.session_id,
            "user_id": identity.user_id,
            "version": 0,
            "items": [],
            "total_items": 0,
            "total_cents": 0,
        }
    return {
        "id": cart.id,
        "session_id": cart.session_id,
        "user_id": cart.user_id,
        "version": cart.version,
        "items": [
            {
                "product_id": it.product_id,
                "quantity": it.quantity,
                "price_snapshot": it.price_snapshot,
                "line_total_cents": it.quantity * it.price_snapshot,
            }
            for it in cart.items
        ],
        "total_items": cart.total_items,
        "total_cents": cart.total_cents,
    }


class CartService:
    def __init__(self, db: Session, max_line_quantity: Optional[int] = None):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.max_qty = max_line_quantity or settings.CART_MAX_LINE_QUANTITY

    def _lookup(self, identity: CartIdentity) -> Optional[Cart]:
        if identity.is_guest:
            return self.cart_repo.get_by_session(identity.session_id)
        return self.cart_repo.get_by_user(identity.user_id)

    def _check_quantity(self, qty, allow_zero: bool = False):
        if isinstance(qty, bool) or not isinstance(qty, int):
            raise CartValidationError("Quantity must be an integer")
        lowest = 0 if allow_zero else 1
        if qty < lowest:
            raise CartValidationError(
                "Quantity cannot be negative" if allow_zero else "Quantity must be a positive integer"
            )
        if qty > self.max_qty:
            raise CartValidationError(f"Quantity cannot exceed {self.max_qty}")

    def _commit_version(self, cart: Cart, seen_version: int):
        if not self.cart_repo.bump_version(cart, seen_version):
            raise CartConflictError("Cart was modified concurrently, retry")

    def _drop_if_empty(self, cart: Cart) -> Optional[Cart]:
        # an emptied cart ends its lifecycle
        if not cart.items:
            self.cart_repo.delete(cart)
            return None
        return cart

    # queries

    def get_cart(self, identity: CartIdentity) -> Dict:
        return cart_view(self._lookup(identity), identity)

    # commands

    def add_item(self, identity: CartIdentity, product_id: int, qty: int = 1) -> Dict:
        self._check_quantity(qty)
        product = self.product_repo.get(product_id)
        if not product:
            raise ProductNotFoundError("Product not found")
        if not product.active:
            raise CartValidationError("Product is not available")

        try:
            with atomic(self.db):
                cart = self._lookup(identity)
                if cart is None:
                    cart = self.cart_repo.create(
                        session_id=identity.session_id, user_id=identity.user_id
                    )
                seen = cart.version
                item = self.cart_repo.find_item(cart, product_id)
                new_qty = min((item.quantity if item else 0) + qty, self.max_qty)
                if product.track_quantity and product.stock < new_qty:
                    raise CartValidationError("Insufficient stock available")
                price = product.effective_price_cents
                if item:
                    item.quantity = new_qty
                    item.price_snapshot = price
                else:
                    self.cart_repo.add_item(cart, product_id, new_qty, price)
                self.db.flush()
                self._commit_version(cart, seen)
        except IntegrityError:
            raise CartConflictError("Cart was created concurrently, retry")
        return cart_view(cart, identity)

    def update_item(self, identity: CartIdentity, product_id: int, qty: int) -> Dict:
        self._check_quantity(qty, allow_zero=True)
        if qty == 0:
            return self.remove_item(identity, product_id)
        cart = self._lookup(identity)
        if cart is None:
            raise CartNotFoundError("Cart not found")
        item = self.cart_repo.find_item(cart, product_id)
        if item is None:
            return cart_view(cart, identity)

        product = self.product_repo.get(product_id)
        if product and product.track_quantity and product.stock < qty:
            raise CartValidationError("Insufficient stock available")
        with atomic(self.db):
            seen = cart.version
            item.quantity = qty
            self.db.flush()
            self._commit_version(cart, seen)
        return cart_view(cart, identity)

    def remove_item(self, identity: CartIdentity, product_id: int) -> Dict:
        """Idempotent: removing a product that is not in the cart is a successful no-op."""
        cart = self._lookup(identity)
        if cart is None or self.cart_repo.find_item(cart, product_id) is None:
            return cart_view(cart, identity)
        with atomic(self.db):
            seen = cart.version
            self.cart_repo.remove_item(cart, product_id)
            self._commit_version(cart, seen)
            cart = self._drop_if_empty(cart)
        return cart_view(cart, identity)

    def clear_cart(self, identity: CartIdentity) -> Dict:
        cart = self._lookup(identity)
        if cart is not None:
            with atomic(self.db):
                self.cart_repo.delete(cart)
        return cart_view(None, identity)

    def merge_guest_into_user(self, session_id: str, user_id: str) -> Dict:
        """
        Fold the guest cart into the user's cart; called once per login.

        Per product the merged quantity is guest + user, capped at the line maximum;
        products only the guest had are appended with the guest's price snapshot.
        Writing the merged lines, bumping the user cart version and deleting the
        guest cart happen in one transaction. If the user cart's version moved
        since we read it, everything rolls back and the guest cart stays intact.
        """
        user_identity = CartIdentity.user(user_id)
        try:
            with atomic(self.db):
                guest = self.cart_repo.get_by_session(session_id)
                user_cart = self.cart_repo.get_by_user(user_identity.user_id)
                if guest is None or not guest.items:
                    if guest is not None:
                        self.cart_repo.delete(guest)
                    return cart_view(user_cart, user_identity)

                if user_cart is None:
                    user_cart = self.cart_repo.create(user_id=user_identity.user_id)
                seen = user_cart.version

                merged = appended = 0
                for g in guest.items:
                    existing = self.cart_repo.find_item(user_cart, g.product_id)
                    if existing:
                        existing.quantity = min(existing.quantity + g.quantity, self.max_qty)
                        merged += 1
                    else:
                        self.cart_repo.add_item(
                            user_cart,
                            g.product_id,
                            min(g.quantity, self.max_qty),
                            g.price_snapshot,
                        )
                        appended += 1
                self.db.flush()
                self._commit_version(user_cart, seen)
                self.cart_repo.delete(guest)
        except IntegrityError:
            raise CartConflictError("Cart was created concurrently, retry")

        log.info(
            "Merged guest cart %s into user %s (summed=%d appended=%d)",
            session_id,
            user_identity.user_id,
            merged,
            appended,
        )
        return cart_view(user_cart, user_identity)
