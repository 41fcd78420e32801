"""Versioned MongoDB schema migrations for account collections."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from app.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20260301_01_user_indexes(db: Any) -> None:
    db["users"].create_index("user_id", unique=True)
    db["users"].create_index("username", unique=True)
    db["users"].create_index("email", unique=True)


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20260301_01_user_indexes", _migration_20260301_01_user_indexes),
]


def run_migrations(db: Any) -> list[str]:
    """Apply pending migrations to ``db`` and return the ids applied."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        LOGGER.info("mongo_migration_applied %s", migration_id)
        applied.append(migration_id)
    return applied


def apply_mongo_migrations() -> None:
    """Apply MongoDB migrations if MONGODB_URI is configured."""
    mongo_uri = os.getenv("MONGODB_URI", "").strip()
    mongo_db = os.getenv("MONGODB_DB", "vidstream").strip() or "vidstream"
    if not mongo_uri:
        return

    client: Any = pymongo.MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
    try:
        try:
            client.admin.command("ping")
            run_migrations(client[mongo_db])
        except PyMongoError:
            LOGGER.exception("mongo_migrations_failed")
    finally:
        client.close()
