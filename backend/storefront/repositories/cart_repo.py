from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.models.cart import Cart
from storefront.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_session(self, session_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.session_id == session_id).first()

    def get_by_user(self, user_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def create(self, session_id: Optional[str] = None, user_id: Optional[str] = None) -> Cart:
        c = Cart(session_id=session_id, user_id=user_id, version=1)
        self.db.add(c)
        self.db.flush()
        return c

    def find_item(self, cart: Cart, product_id: int) -> Optional[CartItem]:
        return next((it for it in cart.items if it.product_id == product_id), None)

    def add_item(self, cart: Cart, product_id: int, qty: int, price_snapshot: int) -> CartItem:
        item = CartItem(product_id=product_id, quantity=qty, price_snapshot=price_snapshot)
        cart.items.append(item)
        self.db.flush()
        return item

    def remove_item(self, cart: Cart, product_id: int) -> bool:
        item = self.find_item(cart, product_id)
        if not item:
            return False
        cart.items.remove(item)
        self.db.flush()
        return True

    def delete(self, cart: Cart):
        self.db.delete(cart)
        self.db.flush()

    def bump_version(self, cart: Cart, seen_version: int) -> bool:
        """
        Compare-and-swap on the version column:
        UPDATE carts SET version = seen + 1 WHERE id = :id AND version = :seen.
        Returns False when another writer got there first.
        """
        res = self.db.execute(
            update(Cart)
            .where(Cart.id == cart.id, Cart.version == seen_version)
            .values(version=seen_version + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            return False
        # keep the in-session object in step with the row
        self.db.refresh(cart, attribute_names=["version"])
        return True
