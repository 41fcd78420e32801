#!/usr/bin/env python3
"""One-shot user migration from the JSON fallback store to MongoDB."""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

import pymongo
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from app.users.models import UserRecord

DEFAULT_USERS_FILE = Path("runtime") / "user_store" / "users.json"
DEFAULT_DB_NAME = "vidstream"
DEFAULT_COLLECTION = "users"
MAX_PREVIEW_ITEMS = 10


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Check and migrate users from the JSON store to MongoDB."
    )
    parser.add_argument(
        "--users-file",
        type=Path,
        default=DEFAULT_USERS_FILE,
        help="Path to fallback users.json file.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only print diff/check report and do not write into MongoDB.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print migration plan without writing into MongoDB.",
    )
    parser.add_argument(
        "--keep-sessions",
        action="store_true",
        help="Copy stored refresh tokens instead of forcing users to log in again.",
    )
    return parser.parse_args(argv)


def load_source_rows(users_file: Path) -> list[dict[str, Any]]:
    """Load raw rows from source JSON file."""
    if not users_file.exists():
        return []
    payload = json.loads(users_file.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"Expected list in {users_file}, got {type(payload).__name__}")
    return [item for item in payload if isinstance(item, dict)]


def normalize_source_users(
    rows: list[dict[str, Any]], *, keep_sessions: bool = False
) -> tuple[list[UserRecord], int]:
    """Validate users and normalize username/email to lowercase."""
    users: list[UserRecord] = []
    invalid_count = 0
    for row in rows:
        try:
            user = UserRecord.model_validate(row)
        except ValidationError:
            invalid_count += 1
            continue
        update: dict[str, Any] = {
            "username": user.username.strip().lower(),
            "email": user.email.strip().lower(),
        }
        if not keep_sessions:
            update["refresh_token"] = None
        users.append(user.model_copy(update=update))
    return users, invalid_count


def collect_source_stats(
    users: list[UserRecord],
) -> tuple[dict[str, UserRecord], list[str]]:
    """Keep the first user per username/email and report the conflicting ones."""
    unique_users: dict[str, UserRecord] = {}
    seen_keys: set[str] = set()
    conflicts: list[str] = []
    for user in users:
        keys = {
            f"username:{user.username}",
            f"email:{user.email}",
            f"id:{user.user_id}",
        }
        if keys & seen_keys:
            conflicts.append(user.user_id)
            continue
        seen_keys |= keys
        unique_users[user.user_id] = user
    return unique_users, conflicts


def _mongo_target_collection() -> tuple[Any, Any]:
    """Create Mongo collection object from environment variables."""
    mongo_uri = os.getenv("MONGODB_URI", "").strip()
    mongo_db = os.getenv("MONGODB_DB", DEFAULT_DB_NAME).strip() or DEFAULT_DB_NAME
    if not mongo_uri:
        raise RuntimeError("MONGODB_URI is empty. Set env var before running script.")
    client: Any = pymongo.MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
    client.admin.command("ping")
    return client, client[mongo_db][DEFAULT_COLLECTION]


def _target_user_ids(collection: Any) -> set[str]:
    """Return user id set from target collection."""
    return {
        str(row.get("user_id", ""))
        for row in collection.find({}, {"_id": 0, "user_id": 1})
    }


def _print_check_report(
    users_file: Path,
    source_total_rows: int,
    invalid_count: int,
    source_map: dict[str, UserRecord],
    conflicts: list[str],
    target_ids: set[str],
) -> None:
    """Print source/target consistency report."""
    missing_in_target = sorted(set(source_map) - target_ids)

    print(f"Source file: {users_file}")
    print(f"Source rows total: {source_total_rows}")
    print(f"Source valid users: {len(source_map)}")
    print(f"Source invalid rows skipped: {invalid_count}")
    print(f"Source conflicting users skipped: {len(conflicts)}")
    if conflicts:
        print(f"Conflict preview: {', '.join(conflicts[:MAX_PREVIEW_ITEMS])}")
    print(f"Target users total: {len(target_ids)}")
    print(f"Missing in target: {len(missing_in_target)}")
    if missing_in_target:
        print(f"Missing preview: {', '.join(missing_in_target[:MAX_PREVIEW_ITEMS])}")


def _target_conflict(collection: Any, user: UserRecord) -> Any:
    """Return a different target user that owns the same username or email."""
    return collection.find_one(
        {
            "$or": [{"username": user.username}, {"email": user.email}],
            "user_id": {"$ne": user.user_id},
        },
        {"_id": 0, "user_id": 1},
    )


def _migrate_users(
    source_map: dict[str, UserRecord],
    collection: Any,
    dry_run: bool,
) -> tuple[int, int, list[str]]:
    """Upsert source users by user id, skipping rows that collide in target."""
    if not source_map:
        return 0, 0, []

    target_ids = _target_user_ids(collection)
    processed = 0
    inserted_candidates = 0
    target_conflicts: list[str] = []
    for user in source_map.values():
        if _target_conflict(collection, user) is not None:
            target_conflicts.append(user.user_id)
            continue
        processed += 1
        if user.user_id not in target_ids:
            inserted_candidates += 1
        if dry_run:
            continue
        collection.update_one(
            {"user_id": user.user_id},
            {"$set": user.model_dump()},
            upsert=True,
        )
    return processed, inserted_candidates, target_conflicts


def main(argv: list[str] | None = None) -> int:
    """Execute check or migration flow."""
    args = _parse_args(argv)

    source_rows = load_source_rows(args.users_file)
    source_users, invalid_count = normalize_source_users(
        source_rows, keep_sessions=args.keep_sessions
    )
    source_map, conflicts = collect_source_stats(source_users)

    mongo_client = None
    try:
        mongo_client, collection = _mongo_target_collection()

        if args.check:
            _print_check_report(
                users_file=args.users_file,
                source_total_rows=len(source_rows),
                invalid_count=invalid_count,
                source_map=source_map,
                conflicts=conflicts,
                target_ids=_target_user_ids(collection),
            )
            return 0

        processed, inserted_candidates, target_conflicts = _migrate_users(
            source_map=source_map,
            collection=collection,
            dry_run=args.dry_run,
        )
        print(f"Source rows total: {len(source_rows)}")
        print(f"Source valid users: {len(source_map)}")
        print(f"Source invalid rows skipped: {invalid_count}")
        print(f"Source conflicting users skipped: {len(conflicts)}")
        print(f"Target conflicting users skipped: {len(target_conflicts)}")
        if target_conflicts:
            preview = ", ".join(target_conflicts[:MAX_PREVIEW_ITEMS])
            print(f"Target conflict preview: {preview}")
        print(f"Processed users: {processed}")
        print(f"Potentially inserted users: {inserted_candidates}")
        print(f"Mode: {'dry-run' if args.dry_run else 'write'}")
        print(f"Target users total now: {collection.count_documents({})}")
        return 0
    except (PyMongoError, RuntimeError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if mongo_client is not None:
            mongo_client.close()


if __name__ == "__main__":
    raise SystemExit(main())
