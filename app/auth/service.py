"""Account service for registration, login, token refresh and logout."""

from __future__ import annotations

import hmac
import logging
import time
import uuid
from typing import Protocol

import jwt

from app.api.contracts import LoginData, PublicUser, TokenPairData
from app.api.errors import ApiError, ApiErrorCode
from app.auth.tokens import TokenIssuer, TokenPair, TokenSigningError
from app.core.security import hash_password, verify_password
from app.media.storage import MediaStorageProtocol, MediaUpload, StoredMedia
from app.users.models import UserRecord
from app.users.repository import UserAlreadyExistsError

LOGGER = logging.getLogger(__name__)


class UserRepositoryProtocol(Protocol):
    """Protocol for user persistence used by the account service."""

    def get_user_by_id(self, user_id: str) -> UserRecord | None:
        """Get user by id."""

    def find_by_username_or_email(
        self, *, username: str | None = None, email: str | None = None
    ) -> UserRecord | None:
        """Get the first user matching username or email."""

    def create_user(self, user: UserRecord) -> None:
        """Insert a new user."""

    def set_refresh_token(self, user_id: str, refresh_token: str | None) -> bool:
        """Overwrite or clear the refresh-token slot."""


def _clean(value: str | None) -> str:
    return (value or "").strip()


class AuthService:
    """Coordinates the account lifecycle around a single stored refresh token.

    A user holds at most one valid refresh token. Login and refresh overwrite
    it, logout clears it, and refresh only accepts the exact stored value, so
    any earlier token is rejected once superseded.
    """

    def __init__(
        self,
        *,
        repo: UserRepositoryProtocol,
        tokens: TokenIssuer,
        media: MediaStorageProtocol,
    ) -> None:
        """Initialize service dependencies."""
        self._repo = repo
        self._tokens = tokens
        self._media = media

    def register(
        self,
        *,
        full_name: str | None,
        email: str | None,
        password: str | None,
        username: str | None,
        avatar: MediaUpload | None,
        cover_image: MediaUpload | None = None,
    ) -> PublicUser:
        """Create a new account and return its sanitized profile."""
        fields = [full_name, email, password, username]
        if any(not _clean(field) for field in fields):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="All fields are required",
            )

        normalized_username = _clean(username).lower()
        normalized_email = _clean(email).lower()

        existing = self._repo.find_by_username_or_email(
            username=normalized_username, email=normalized_email
        )
        if existing is not None:
            raise ApiError(
                status_code=409,
                error_code=ApiErrorCode.USER_ALREADY_EXISTS,
                message="User with email or username already exists",
            )

        if avatar is None or not avatar.filename:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="Avatar file is required",
            )

        stored: list[StoredMedia] = []
        try:
            avatar_media = self._media.upload(avatar)
            if avatar_media is None:
                raise ApiError(
                    status_code=400,
                    error_code=ApiErrorCode.VALIDATION_ERROR,
                    message="Avatar file is required",
                )
            stored.append(avatar_media)
            cover_media = self._media.upload(cover_image)
            if cover_media is not None:
                stored.append(cover_media)

            now_ts = int(time.time())
            user = UserRecord(
                user_id=uuid.uuid4().hex,
                username=normalized_username,
                email=normalized_email,
                full_name=_clean(full_name),
                avatar=avatar_media.url,
                cover_image=cover_media.url if cover_media else "",
                password_hash=hash_password(password or ""),
                refresh_token=None,
                created_at=now_ts,
                updated_at=now_ts,
            )
            try:
                self._repo.create_user(user)
            except UserAlreadyExistsError as exc:
                raise ApiError(
                    status_code=409,
                    error_code=ApiErrorCode.USER_ALREADY_EXISTS,
                    message="User with email or username already exists",
                ) from exc
        except Exception:
            for media in stored:
                self._media.delete(media)
            raise

        created = self._repo.get_user_by_id(user.user_id)
        if created is None:
            raise ApiError(
                status_code=500,
                error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
                message="Something went wrong while registering the user",
            )

        LOGGER.info("user_registered", extra={"user_id": created.user_id})
        return created.to_public()

    def login(
        self, *, username: str | None, email: str | None, password: str | None
    ) -> LoginData:
        """Authenticate by username or email and issue a new token pair."""
        if not (_clean(username) or _clean(email)):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="username or email is required",
            )

        user = self._repo.find_by_username_or_email(
            username=_clean(username) or None, email=_clean(email) or None
        )
        if user is None:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.USER_NOT_FOUND,
                message="User does not exist",
            )

        # Same status as an unknown user; callers cannot tell which check failed.
        if not verify_password(password or "", user.password_hash):
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.AUTH_INVALID_CREDENTIALS,
                message="Invalid user credentials",
            )

        pair = self._issue_session_for_user(user)
        logged_in = self._repo.get_user_by_id(user.user_id)
        if logged_in is None:
            raise ApiError(
                status_code=500,
                error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
                message="Something went wrong while logging in the user",
            )

        LOGGER.info("user_logged_in", extra={"user_id": user.user_id})
        return LoginData(
            user=logged_in.to_public(),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    def refresh(self, incoming_refresh_token: str | None) -> TokenPairData:
        """Validate the presented refresh token and rotate the token pair."""
        if not incoming_refresh_token:
            raise self._unauthorized(
                "Unauthorized request", ApiErrorCode.AUTH_MISSING_TOKEN
            )

        try:
            payload = self._tokens.decode_refresh_token(incoming_refresh_token)
        except jwt.PyJWTError as exc:
            LOGGER.info("refresh_rejected_invalid_token")
            raise self._unauthorized(str(exc) or "Invalid refresh token") from exc

        user = self._repo.get_user_by_id(str(payload.get("sub") or ""))
        if user is None:
            raise self._unauthorized("Invalid refresh token")

        if not user.refresh_token or not hmac.compare_digest(
            incoming_refresh_token, user.refresh_token
        ):
            LOGGER.info("refresh_rejected_superseded", extra={"user_id": user.user_id})
            raise self._unauthorized("Refresh token is expired or used")

        pair = self._issue_session_for_user(user)
        LOGGER.info("session_refreshed", extra={"user_id": user.user_id})
        return TokenPairData(
            access_token=pair.access_token, refresh_token=pair.refresh_token
        )

    def logout(self, user_id: str) -> None:
        """Clear the stored refresh token, ending the server-side session."""
        self._repo.set_refresh_token(user_id, None)
        LOGGER.info("user_logged_out", extra={"user_id": user_id})

    def authenticate_access_token(self, token: str) -> PublicUser:
        """Resolve the user behind a valid access token."""
        try:
            payload = self._tokens.decode_access_token(token)
        except jwt.PyJWTError as exc:
            raise self._unauthorized("Invalid access token") from exc

        user = self._repo.get_user_by_id(str(payload.get("sub") or ""))
        if user is None:
            raise self._unauthorized("Invalid access token")
        return user.to_public()

    def _issue_session_for_user(self, user: UserRecord) -> TokenPair:
        """Mint a token pair and persist its refresh half over any previous one."""
        try:
            pair = self._tokens.issue_pair(user)
        except TokenSigningError as exc:
            LOGGER.exception("token_signing_failed", extra={"user_id": user.user_id})
            raise ApiError(
                status_code=500,
                error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
                message="Something went wrong while generating refresh and access token",
            ) from exc

        if not self._repo.set_refresh_token(user.user_id, pair.refresh_token):
            raise ApiError(
                status_code=500,
                error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
                message="Something went wrong while generating refresh and access token",
            )
        return pair

    @staticmethod
    def _unauthorized(
        message: str, error_code: ApiErrorCode = ApiErrorCode.AUTH_TOKEN_INVALID
    ) -> ApiError:
        return ApiError(status_code=401, error_code=error_code, message=message)
