"""Media storage for user avatars and cover images."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

from app.api.errors import ApiError, ApiErrorCode

LOGGER = logging.getLogger(__name__)

ALLOWED_IMAGE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class MediaUpload:
    """Incoming media file taken from a multipart request."""

    filename: str
    stream: BinaryIO


@dataclass(frozen=True)
class StoredMedia:
    """Reference to a stored media file."""

    media_id: str
    url: str
    path: Path


class MediaStorageProtocol(Protocol):
    """Protocol for media storage used during registration."""

    def upload(self, media: MediaUpload | None) -> StoredMedia | None:
        """Store media and return its reference, or ``None`` if nothing stored."""

    def delete(self, stored: StoredMedia) -> None:
        """Remove previously stored media."""


class LocalMediaStorage:
    """Store media files under a directory served at a public URL prefix."""

    def __init__(
        self,
        *,
        media_dir: Path,
        url_prefix: str,
        max_bytes: int,
        allowed_suffixes: frozenset[str] = ALLOWED_IMAGE_SUFFIXES,
    ) -> None:
        self._media_dir = media_dir
        self._media_dir.mkdir(parents=True, exist_ok=True)
        self._url_prefix = url_prefix.rstrip("/")
        self._max_bytes = max(1, int(max_bytes))
        self._allowed_suffixes = allowed_suffixes

    @property
    def media_dir(self) -> Path:
        return self._media_dir

    def upload(self, media: MediaUpload | None) -> StoredMedia | None:
        """Copy the upload into the media directory and return its URL.

        Returns ``None`` when no file was supplied or the stream is empty.
        Unsupported file types and oversized files are rejected with an
        ``ApiError``.
        """
        if media is None or not media.filename:
            return None

        suffix = Path(media.filename).suffix.lower()
        if suffix not in self._allowed_suffixes:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message=(
                    "Unsupported media type. Allowed: "
                    + ", ".join(sorted(self._allowed_suffixes))
                ),
            )

        media_id = uuid.uuid4().hex
        target = self._media_dir / f"{media_id}{suffix}"
        size = 0
        try:
            with target.open("wb") as fh:
                while True:
                    chunk = media.stream.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self._max_bytes:
                        break
                    fh.write(chunk)
        except OSError:
            LOGGER.exception("media_upload_failed")
            target.unlink(missing_ok=True)
            return None

        if size == 0:
            target.unlink(missing_ok=True)
            return None
        if size > self._max_bytes:
            target.unlink(missing_ok=True)
            raise ApiError(
                status_code=413,
                error_code=ApiErrorCode.REQUEST_TOO_LARGE,
                message=(
                    f"Media file exceeds configured limit ({self._max_bytes} bytes)."
                ),
            )

        return StoredMedia(
            media_id=media_id,
            url=f"{self._url_prefix}/{target.name}",
            path=target,
        )

    def delete(self, stored: StoredMedia) -> None:
        """Remove previously stored media."""
        stored.path.unlink(missing_ok=True)
