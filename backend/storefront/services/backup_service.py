import functools
import json
import logging
import os
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional

from filelock import FileLock, Timeout
from sqlalchemy import DateTime, delete, insert
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.db import SessionLocal
from storefront.models.cart import Cart
from storefront.models.cart_item import CartItem
from storefront.models.category import Category
from storefront.models.product import Product

log = logging.getLogger("storefront.backup")

# collection name -> mapped model; order matters for restore (parents first)
COLLECTIONS = {
    "categories": Category,
    "products": Product,
    "carts": Cart,
    "cart_items": CartItem,
}


class BackupError(Exception):
    pass


def _timestamp_slug(now: datetime) -> str:
    return now.isoformat().replace(":", "-").replace(".", "-").replace("+", "-")


def _to_document(row) -> Dict:
    doc = {}
    for col in row.__table__.columns:
        value = getattr(row, col.key)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        doc[col.key] = value
    return doc


def _from_document(model, doc: Dict) -> Dict:
    values = {}
    for col in model.__table__.columns:
        if col.key not in doc:
            continue
        value = doc[col.key]
        if value is not None and isinstance(col.type, DateTime) and isinstance(value, str):
            value = datetime.fromisoformat(value)
        values[col.key] = value
    return values


class JsonBackupService:
    """
    Keeps JSON snapshots of the store's collections on disk.

    Snapshots come in three flavours:
      - realtime mirrors: one overwritable `<collection>.json` per collection
      - complete backups: every collection in one timestamped file
      - emergency backups: products + categories, written by the health monitor,
        one file per incident, never overwritten
    All writes into the mirror directory are serialised through a FileLock.
    """

    def __init__(
        self,
        backup_dir: Optional[str] = None,
        emergency_dir: Optional[str] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = None,
    ):
        self.backup_dir = backup_dir or settings.JSON_BACKUP_DIR
        self.emergency_dir = emergency_dir or settings.EMERGENCY_BACKUP_DIR
        self.session_factory = session_factory
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        os.makedirs(self.backup_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(self.backup_dir, ".backup.lock"))

    def collection_path(self, name: str) -> str:
        return os.path.join(self.backup_dir, f"{name}.json")

    def _model(self, name: str):
        try:
            return COLLECTIONS[name]
        except KeyError:
            raise BackupError(f"Unknown collection: {name}")

    def dump_collection(self, name: str, db: Optional[Session] = None) -> List[Dict]:
        model = self._model(name)
        if db is not None:
            return [_to_document(r) for r in db.query(model).order_by(model.id).all()]
        with self.session_factory() as s:
            return [_to_document(r) for r in s.query(model).order_by(model.id).all()]

    def load_collection(self, name: str) -> List[Dict]:
        path = self.collection_path(name)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh).get("documents") or []
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            log.warning("Failed to load JSON for %s: %s", name, e)
            return []

    def save_collection(self, name: str) -> str:
        documents = self.dump_collection(name)
        payload = {
            "collectionName": name,
            "lastUpdated": self.clock().isoformat(),
            "count": len(documents),
            "documents": documents,
        }
        path = self.collection_path(name)
        try:
            with self._lock.acquire(timeout=10):
                tmp = path + ".tmp"
                with open(tmp, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2)
                os.replace(tmp, path)
        except Timeout:
            raise BackupError(f"Could not acquire backup lock for {name}")
        log.info("JSON backup updated for %s (count=%d)", name, len(documents))
        return path

    def sync_all(self) -> bool:
        """Mirror every collection. Returns False if another backup already holds the lock."""
        try:
            self._lock.acquire(timeout=0)
        except Timeout:
            log.warning("Backup already in progress, skipping sync")
            return False
        try:
            log.info("Starting full sync to JSON")
            for name in COLLECTIONS:
                self.save_collection(name)
            log.info("Full sync completed")
            return True
        finally:
            self._lock.release()

    def collection_stats(self) -> Dict[str, Dict]:
        stats = {}
        with self.session_factory() as s:
            for name, model in COLLECTIONS.items():
                db_count = s.query(model).count()
                json_count = len(self.load_collection(name))
                stats[name] = {
                    "db": db_count,
                    "json": json_count,
                    "synced": db_count == json_count,
                }
        return stats

    def create_complete_backup(self) -> str:
        now = self.clock()
        path = os.path.join(self.backup_dir, f"complete-backup-{_timestamp_slug(now)}.json")
        payload = {
            "timestamp": now.isoformat(),
            "version": "2.0",
            "stats": self.collection_stats(),
            "collections": {name: self.dump_collection(name) for name in COLLECTIONS},
        }
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        log.info("Complete backup created: %s", path)
        return path

    def create_emergency_backup(self, db: Optional[Session] = None) -> str:
        """
        Dump all products and categories into a new file under the emergency directory.
        Both collections are read through one session. Raises on any failure; the caller
        decides whether that is fatal.
        """
        if db is None:
            with self.session_factory() as s:
                return self.create_emergency_backup(db=s)

        now = self.clock()
        os.makedirs(self.emergency_dir, exist_ok=True)
        products = self.dump_collection("products", db=db)
        categories = self.dump_collection("categories", db=db)
        payload = {
            "timestamp": now.isoformat(),
            "emergency": True,
            "products": products,
            "categories": categories,
            "metadata": {
                "productCount": len(products),
                "categoryCount": len(categories),
                "trigger": "database-monitor-alert",
            },
        }
        base = os.path.join(self.emergency_dir, f"emergency-backup-{_timestamp_slug(now)}")
        path = base + ".json"
        n = 1
        while True:
            try:
                # "x" refuses to clobber an earlier incident's file
                with open(path, "x", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2)
                break
            except FileExistsError:
                path = f"{base}-{n}.json"
                n += 1
        return path

    def restore_collection(self, name: str) -> bool:
        model = self._model(name)
        documents = self.load_collection(name)
        if not documents:
            log.warning("No JSON data found for %s", name)
            return False
        rows = [_from_document(model, d) for d in documents]
        with self.session_factory() as s:
            with s.begin():
                s.execute(delete(model.__table__))
                s.execute(insert(model.__table__), rows)
        log.info("Restored %d documents to %s", len(rows), name)
        return True

    def auto_recover(self) -> int:
        """Restore every collection that is empty in the database but has a JSON snapshot."""
        recovered = 0
        for name, stat in self.collection_stats().items():
            if stat["db"] == 0 and stat["json"] > 0:
                log.warning("Collection %s is empty, attempting recovery: %s", name, stat)
                if self.restore_collection(name):
                    recovered += 1
        log.info("Auto-recovery completed (collections recovered=%d)", recovered)
        return recovered


def mirrored(collection: str):
    """
    Decorate a write method so the collection's JSON mirror is refreshed after it succeeds.
    The decorated object must expose a `backup` attribute (JsonBackupService or None).
    A mirror failure is logged and never masks the write's own result.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            result = fn(self, *args, **kwargs)
            backup = getattr(self, "backup", None)
            if backup is not None:
                try:
                    backup.save_collection(collection)
                except Exception:
                    log.exception("JSON mirror failed for %s", collection)
            return result

        return wrapper

    return decorator
