import json
import os
from datetime import datetime, timezone

import pytest
from filelock import FileLock

from storefront.db import SessionLocal, init_db
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.services.backup_service import BackupError, JsonBackupService


def setup_module(module):
    init_db()
    db = SessionLocal()
    try:
        hair = Category(name="Hair Care")
        db.add(hair)
        db.flush()
        db.add_all(
            [
                Product(sku=f"BK-{i}", name=f"Product {i}", price_cents=100 + i, stock=i, category_id=hair.id)
                for i in range(5)
            ]
        )
        db.commit()
    finally:
        db.close()


def product_count():
    db = SessionLocal()
    try:
        return db.query(Product).count()
    finally:
        db.close()


def wipe_products():
    db = SessionLocal()
    try:
        db.query(Product).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture
def backup(tmp_path):
    fixed = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    return JsonBackupService(
        backup_dir=str(tmp_path / "realtime"),
        emergency_dir=str(tmp_path / "emergency"),
        clock=lambda: fixed,
    )


def test_save_collection_writes_mirror(backup):
    path = backup.save_collection("products")
    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)
    assert payload["collectionName"] == "products"
    assert payload["count"] == 5
    assert payload["lastUpdated"] == "2024-05-01T12:30:00+00:00"
    assert {d["sku"] for d in payload["documents"]} == {f"BK-{i}" for i in range(5)}
    assert backup.load_collection("products") == payload["documents"]


def test_sync_all_mirrors_every_collection(backup):
    assert backup.sync_all() is True
    for name in ("categories", "products", "carts", "cart_items"):
        assert os.path.exists(backup.collection_path(name))
    stats = backup.collection_stats()
    assert all(s["synced"] for s in stats.values())
    assert stats["products"] == {"db": 5, "json": 5, "synced": True}


def test_sync_skipped_while_another_backup_holds_the_lock(backup):
    other = FileLock(os.path.join(backup.backup_dir, ".backup.lock"))
    with other.acquire(timeout=1):
        assert backup.sync_all() is False
    assert not os.path.exists(backup.collection_path("products"))


def test_unknown_collection(backup):
    with pytest.raises(BackupError):
        backup.save_collection("orders")
    with pytest.raises(BackupError):
        backup.restore_collection("orders")


def test_load_missing_or_corrupt_mirror_is_empty(backup):
    assert backup.load_collection("categories") == []
    with open(backup.collection_path("categories"), "w", encoding="utf-8") as fh:
        fh.write("{not json")
    assert backup.load_collection("categories") == []


def test_complete_backup_holds_every_collection(backup):
    path = backup.create_complete_backup()
    assert os.path.basename(path).startswith("complete-backup-2024-05-01T12-30-00")
    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)
    assert set(payload["collections"]) == {"categories", "products", "carts", "cart_items"}
    assert len(payload["collections"]["products"]) == 5


def test_emergency_backups_never_overwrite(backup):
    first = backup.create_emergency_backup()
    second = backup.create_emergency_backup()
    assert first != second
    assert os.path.exists(first) and os.path.exists(second)
    with open(first, encoding="utf-8") as fh:
        payload = json.load(fh)
    assert payload["emergency"] is True
    assert payload["metadata"] == {
        "productCount": 5,
        "categoryCount": 1,
        "trigger": "database-monitor-alert",
    }


def test_restore_without_mirror_is_refused(backup):
    assert backup.restore_collection("products") is False
    assert product_count() == 5


def test_restore_and_auto_recover(backup):
    backup.sync_all()

    wipe_products()
    assert product_count() == 0
    assert backup.auto_recover() == 1
    assert product_count() == 5

    wipe_products()
    assert backup.restore_collection("products") is True
    db = SessionLocal()
    try:
        p = db.query(Product).filter(Product.sku == "BK-3").one()
        assert p.price_cents == 103
        assert p.category.name == "Hair Care"
    finally:
        db.close()


def test_emergency_backup_reads_through_a_single_session(tmp_path):
    opened = []

    def counting_factory():
        opened.append(1)
        return SessionLocal()

    svc = JsonBackupService(
        backup_dir=str(tmp_path / "realtime"),
        emergency_dir=str(tmp_path / "emergency"),
        session_factory=counting_factory,
    )
    path = svc.create_emergency_backup()
    assert len(opened) == 1
    with open(path, encoding="utf-8") as fh:
        assert json.load(fh)["metadata"]["productCount"] == product_count()
