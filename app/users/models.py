"""Pydantic models for persisted user accounts."""

from __future__ import annotations

from pydantic import BaseModel

from app.api.contracts import PublicUser


class UserRecord(BaseModel):
    """Persisted user account with credential and session fields."""

    user_id: str
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    password_hash: str
    refresh_token: str | None = None
    created_at: int
    updated_at: int

    def to_public(self) -> PublicUser:
        """Return the sanitized projection safe to send to clients."""
        return PublicUser(
            id=self.user_id,
            username=self.username,
            email=self.email,
            full_name=self.full_name,
            avatar=self.avatar,
            cover_image=self.cover_image,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
