"""Access and refresh token issuance backed by PyJWT."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any

import jwt

from app.core.config import AuthConfig
from app.users.models import UserRecord

_JWT_ALG = "HS256"


class TokenSigningError(Exception):
    """Raised when a token cannot be signed."""


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair minted for one user."""

    access_token: str
    refresh_token: str


class TokenIssuer:
    """Mint and verify tokens; each token type has its own secret and TTL."""

    def __init__(self, config: AuthConfig) -> None:
        self._config = config

    def issue_pair(self, user: UserRecord) -> TokenPair:
        """Mint a fresh access/refresh token pair for ``user``."""
        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=self.create_refresh_token(user),
        )

    def create_access_token(self, user: UserRecord) -> str:
        now_ts = int(time.time())
        payload = {
            "iss": self._config.issuer,
            "sub": user.user_id,
            "email": user.email,
            "username": user.username,
            "full_name": user.full_name,
            "type": "access",
            "iat": now_ts,
            "exp": now_ts + self._config.access_token_ttl_seconds,
            "jti": uuid.uuid4().hex,
        }
        return self._sign(payload, self._config.access_token_secret)

    def create_refresh_token(self, user: UserRecord) -> str:
        now_ts = int(time.time())
        payload = {
            "iss": self._config.issuer,
            "sub": user.user_id,
            "type": "refresh",
            "iat": now_ts,
            "exp": now_ts + self._config.refresh_token_ttl_seconds,
            "jti": uuid.uuid4().hex,
        }
        return self._sign(payload, self._config.refresh_token_secret)

    def decode_access_token(self, token: str) -> dict[str, Any]:
        """Verify an access token, raising ``jwt.PyJWTError`` on failure."""
        return self._decode(
            token, self._config.access_token_secret, expected_type="access"
        )

    def decode_refresh_token(self, token: str) -> dict[str, Any]:
        """Verify a refresh token, raising ``jwt.PyJWTError`` on failure."""
        return self._decode(
            token, self._config.refresh_token_secret, expected_type="refresh"
        )

    @staticmethod
    def _sign(payload: dict[str, Any], secret: str) -> str:
        if not secret:
            raise TokenSigningError("Signing secret is not configured")
        try:
            return jwt.encode(payload, secret, algorithm=_JWT_ALG)
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            raise TokenSigningError(str(exc)) from exc

    def _decode(
        self, token: str, secret: str, *, expected_type: str
    ) -> dict[str, Any]:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            issuer=self._config.issuer,
            options={"require": ["exp", "iat", "sub"]},
        )
        if payload.get("type") != expected_type:
            raise jwt.InvalidTokenError("Invalid token type")
        return payload
