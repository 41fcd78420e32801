"""Repository for user accounts and their refresh-token slot."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from threading import Lock
from typing import Any

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.users.models import UserRecord

LOGGER = logging.getLogger(__name__)


class UserAlreadyExistsError(Exception):
    """Raised when a username or email is already taken."""


class UserStoreError(Exception):
    """Raised when the file store exists but cannot be read."""


class UserRepository:
    """User repository with MongoDB primary and file-store fallback."""

    def __init__(self, app_root: Path) -> None:
        """Initialize repository storage backends."""
        self._fallback_dir = app_root / "runtime" / "user_store"
        self._fallback_dir.mkdir(parents=True, exist_ok=True)
        self._users_file = self._fallback_dir / "users.json"
        self._file_lock = Lock()

        self._mongo_users = None

        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "vidstream").strip() or "vidstream"

        if mongo_uri:
            try:
                client: MongoClient = MongoClient(
                    mongo_uri, serverSelectionTimeoutMS=3000
                )
                client.admin.command("ping")
                self._mongo_users = client[mongo_db]["users"]
            except PyMongoError:
                LOGGER.warning("mongo_unavailable_using_file_store", exc_info=True)
                self._mongo_users = None

    @property
    def uses_mongo(self) -> bool:
        """Return whether MongoDB is the active backend."""
        return self._mongo_users is not None

    def _read_users(self) -> list[dict[str, Any]]:
        """Read user rows from JSON file; a missing file means no users."""
        if not self._users_file.exists():
            return []
        try:
            payload = json.loads(self._users_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.error("user_store_unreadable", exc_info=True)
            raise UserStoreError(str(self._users_file)) from exc
        if not isinstance(payload, list):
            LOGGER.error("user_store_malformed")
            raise UserStoreError(str(self._users_file))
        return payload

    def _write_users(self, items: list[dict[str, Any]]) -> None:
        """Persist user rows to JSON file."""
        tmp_path = self._users_file.with_suffix(".json.tmp")
        tmp_path.write_text(
            json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        tmp_path.replace(self._users_file)

    def get_user_by_id(self, user_id: str) -> UserRecord | None:
        """Get user by id from storage."""
        if not user_id:
            return None
        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({"user_id": user_id}, {"_id": 0})
            return UserRecord.model_validate(doc) if doc else None

        for row in self._read_users():
            if str(row.get("user_id", "")) == user_id:
                return UserRecord.model_validate(row)
        return None

    def find_by_username_or_email(
        self, *, username: str | None = None, email: str | None = None
    ) -> UserRecord | None:
        """Return the first user matching either username or email."""
        clauses: list[dict[str, str]] = []
        if username:
            clauses.append({"username": username.strip().lower()})
        if email:
            clauses.append({"email": email.strip().lower()})
        if not clauses:
            return None

        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({"$or": clauses}, {"_id": 0})
            return UserRecord.model_validate(doc) if doc else None

        for row in self._read_users():
            for clause in clauses:
                field, value = next(iter(clause.items()))
                if str(row.get(field, "")) == value:
                    return UserRecord.model_validate(row)
        return None

    def create_user(self, user: UserRecord) -> None:
        """Insert a new user, refusing duplicate username or email."""
        doc = user.model_dump()
        if self._mongo_users is not None:
            try:
                self._mongo_users.insert_one(doc)
            except DuplicateKeyError as exc:
                raise UserAlreadyExistsError(user.username) from exc
            return

        with self._file_lock:
            items = self._read_users()
            for row in items:
                if (
                    row.get("username") == user.username
                    or row.get("email") == user.email
                    or row.get("user_id") == user.user_id
                ):
                    raise UserAlreadyExistsError(user.username)
            items.append(doc)
            self._write_users(items)

    def set_refresh_token(self, user_id: str, refresh_token: str | None) -> bool:
        """Overwrite or clear the user's single refresh-token slot."""
        now_ts = int(time.time())
        if self._mongo_users is not None:
            if refresh_token is None:
                update: dict[str, Any] = {
                    "$unset": {"refresh_token": ""},
                    "$set": {"updated_at": now_ts},
                }
            else:
                update = {
                    "$set": {"refresh_token": refresh_token, "updated_at": now_ts}
                }
            result = self._mongo_users.update_one({"user_id": user_id}, update)
            return result.matched_count > 0

        with self._file_lock:
            items = self._read_users()
            matched = False
            for row in items:
                if str(row.get("user_id", "")) == user_id:
                    row["refresh_token"] = refresh_token
                    row["updated_at"] = now_ts
                    matched = True
            if matched:
                self._write_users(items)
            return matched
