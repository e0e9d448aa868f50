import re

from sqlalchemy import Boolean, Column, Integer, String, Text
from sqlalchemy.orm import relationship, validates

from storefront.db import Base


def slugify(name: str) -> str:
    return re.sub(r"-+", "-", re.sub(r"[^a-z0-9]", "-", name.lower()))


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), unique=True, nullable=False)
    slug = Column(String(160), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    products = relationship("Product", back_populates="category")

    @validates("name")
    def _derive_slug(self, key, value):
        self.slug = slugify(value)
        return value

    def __repr__(self):
        return f"<Category slug={self.slug}>"
