from fastapi.testclient import TestClient

from storefront.db import SessionLocal, init_db
from storefront.main import app
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.repositories.product_repo import ProductRepository

client = TestClient(app)


def setup_module(module):
    init_db()
    db = SessionLocal()
    try:
        db.add_all([Category(name="Hair"), Category(name="Body")])
        db.add(Product(sku="H-1", name="Shampoo", price_cents=450, stock=3))
        db.commit()
    finally:
        db.close()


def test_health_reports_counts():
    res = client.get("/api/health")
    assert res.status_code == 200
    body = res.json()
    assert body["db"] is True
    assert body["active_products"] == 1
    assert body["active_categories"] == 2
    # one product is below the default floor of 10
    assert body["status"] == "degraded"


def test_health_degrades_when_counts_fail(monkeypatch):
    def refuse(self):
        raise RuntimeError("no such table")

    monkeypatch.setattr(ProductRepository, "count_active", refuse)
    res = client.get("/api/health")
    assert res.status_code == 200
    body = res.json()
    assert body["db"] is True
    assert body["status"] == "degraded"
    assert body["active_products"] is None
