from typing import List, Optional

from sqlalchemy.orm import Session

from storefront.repositories.product_repo import CategoryRepository, ProductRepository
from storefront.services.backup_service import JsonBackupService, mirrored
from storefront.utils.transactions import atomic


class CatalogueService:
    """Catalogue writes. Each committed write refreshes the matching JSON mirror."""

    def __init__(self, db: Session, backup: Optional[JsonBackupService] = None):
        self.db = db
        self.products = ProductRepository(db)
        self.categories = CategoryRepository(db)
        self.backup = backup

    @mirrored("categories")
    def upsert_category(self, name: str, sort_order: int = 0):
        with atomic(self.db):
            c = self.categories.get_or_create(name, sort_order=sort_order)
        return c

    @mirrored("products")
    def upsert_product(self, sku: str, name: str, price_cents: int, **fields):
        with atomic(self.db):
            p = self.products.create_or_update(sku, name, price_cents, **fields)
        return p

    @mirrored("products")
    def set_product_active(self, sku: str, active: bool) -> bool:
        with atomic(self.db):
            p = self.products.get_by_sku(sku)
            if not p:
                return False
            p.active = active
        return True


def _price_cents(entry: dict, key_cents: str, key_units: str):
    if entry.get(key_cents) is not None:
        try:
            return int(entry[key_cents])
        except (TypeError, ValueError):
            pass
    raw = entry.get(key_units)
    if raw is None:
        return None
    try:
        return int(round(float(raw) * 100))
    except (TypeError, ValueError):
        return None


def _as_bool(raw, default: bool = True) -> bool:
    if raw is None:
        return default
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value in ("false", "0", "no", "off", ""):
            return False
        if value in ("true", "1", "yes", "on"):
            return True
        return default
    return bool(raw)


def normalize_entry(entry: dict) -> dict:
    """Map the loose shapes found in catalogue exports onto upsert_product keyword arguments."""
    sku = entry.get("sku") or entry.get("id") or entry.get("productId")
    stock = entry.get("stock", entry.get("quantity", 0))
    try:
        stock = int(stock or 0)
    except (TypeError, ValueError):
        stock = 0
    return {
        "sku": str(sku) if sku is not None else None,
        "name": entry.get("name") or entry.get("title") or "",
        "price_cents": _price_cents(entry, "price_cents", "price") or 0,
        "sale_price_cents": _price_cents(entry, "sale_price_cents", "salePrice"),
        "stock": stock,
        "description": entry.get("description") or "",
        "category": entry.get("category") or entry.get("categoryName"),
        "active": _as_bool(entry.get("active", entry.get("isActive"))),
    }


def seed_catalogue(svc: CatalogueService, entries: List[dict]) -> int:
    """Upsert every entry (and its category). Entries without a SKU are skipped."""
    seeded = 0
    category_ids = {}
    for raw in entries:
        e = normalize_entry(raw)
        if not e["sku"]:
            continue
        category = e.pop("category")
        if category and category not in category_ids:
            category_ids[category] = svc.upsert_category(category).id
        svc.upsert_product(
            e.pop("sku"),
            e.pop("name"),
            e.pop("price_cents"),
            category_id=category_ids.get(category),
            **e,
        )
        seeded += 1
    return seeded
