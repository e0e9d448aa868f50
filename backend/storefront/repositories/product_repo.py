from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.models.category import Category
from storefront.models.product import Product


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        """Return product by id regardless of its active flag; callers decide what inactive means."""
        return self.db.get(Product, product_id)

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.sku == sku).first()

    def count_active(self) -> int:
        return (
            self.db.query(func.count(Product.id)).filter(Product.active == True).scalar()
            or 0
        )

    def create_or_update(
        self,
        sku: str,
        name: str,
        price_cents: int,
        stock: int = 0,
        description: str = None,
        category_id: int = None,
        sale_price_cents: int = None,
        active: bool = True,
    ) -> Product:
        p = self.get_by_sku(sku)
        if p:
            p.name = name
            p.price_cents = price_cents
            p.stock = stock
            p.description = description
            p.category_id = category_id
            p.sale_price_cents = sale_price_cents
            p.active = active
        else:
            p = Product(
                sku=sku,
                name=name,
                price_cents=price_cents,
                stock=stock,
                description=description,
                category_id=category_id,
                sale_price_cents=sale_price_cents,
                active=active,
            )
            self.db.add(p)
        self.db.flush()
        return p


class CategoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def count_active(self) -> int:
        return (
            self.db.query(func.count(Category.id)).filter(Category.active == True).scalar()
            or 0
        )

    def get_or_create(self, name: str, sort_order: int = 0) -> Category:
        c = self.db.query(Category).filter(Category.name == name).first()
        if not c:
            c = Category(name=name, sort_order=sort_order)
            self.db.add(c)
            self.db.flush()
        return c
