#!/usr/bin/env python3
"""
Seed categories and products from a JSON export.

Accepts a list of entries or an object with an "items" list. Each entry may use
sku/id/productId, price (units) or price_cents, and a category name.

Usage:
    python scripts/seed_catalogue.py --file catalogue.json [--mirror]
"""
import argparse
import json
import os
import sys

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.db import SessionLocal, init_db
from storefront.services.backup_service import JsonBackupService
from storefront.services.catalogue_service import CatalogueService, seed_catalogue
from storefront.utils.log import configure_logging


def load_entries(path: str):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        return data["items"] if isinstance(data.get("items"), list) else list(data.values())
    return data if isinstance(data, list) else []


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", required=True, help="catalogue JSON export")
    parser.add_argument("--mirror", action="store_true", help="refresh the JSON mirror after each write")
    args = parser.parse_args()
    if not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)

    configure_logging()
    init_db(reset=False)
    db = SessionLocal()
    try:
        svc = CatalogueService(db, backup=JsonBackupService() if args.mirror else None)
        print("Seeded products:", seed_catalogue(svc, load_entries(args.file)))
    finally:
        db.close()
