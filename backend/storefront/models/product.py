from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from storefront.db import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    sale_price_cents = Column(Integer, nullable=True)
    stock = Column(Integer, default=0, nullable=False)
    track_quantity = Column(Boolean, default=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    category = relationship("Category", back_populates="products")

    @property
    def effective_price_cents(self) -> int:
        if self.sale_price_cents is not None and self.sale_price_cents < self.price_cents:
            return self.sale_price_cents
        return self.price_cents

    def __repr__(self):
        return f"<Product sku={self.sku} name={self.name}>"
