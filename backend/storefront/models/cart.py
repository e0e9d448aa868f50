from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from storefront.db import Base


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # a cart belongs to a guest session or to a user, never both
        CheckConstraint(
            "(session_id IS NULL) <> (user_id IS NULL)", name="ck_cart_single_owner"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(64), unique=True, index=True, nullable=True)
    user_id = Column(String(64), unique=True, index=True, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def total_items(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def total_cents(self) -> int:
        return sum(it.quantity * it.price_snapshot for it in self.items)
