import logging

from fastapi import APIRouter
from sqlalchemy import text

from storefront.config import settings
from storefront.db import SessionLocal, engine
from storefront.repositories.product_repo import CategoryRepository, ProductRepository

log = logging.getLogger("storefront.api")

router = APIRouter()


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    products = categories = None
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False

    if db_ok:
        db = SessionLocal()
        try:
            products = ProductRepository(db).count_active()
            categories = CategoryRepository(db).count_active()
        except Exception:
            log.exception("Health check could not count the catalogue")
            products = categories = None
        finally:
            db.close()

    above_floors = (
        products is not None
        and categories is not None
        and products >= settings.MIN_PRODUCTS_THRESHOLD
        and categories >= settings.MIN_CATEGORIES_THRESHOLD
    )
    return {
        "status": "ok" if above_floors else "degraded",
        "db": db_ok,
        "active_products": products,
        "active_categories": categories,
    }
