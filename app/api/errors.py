"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_ALREADY_EXISTS = "USER_ALREADY_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )
        self.error_code = error_code
        self.message = message


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into the failure envelope."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
    else:
        error_code = f"HTTP_{status_code}"
        message = str(detail or "HTTP error")
    return {
        "statusCode": status_code,
        "message": message,
        "success": False,
        "errors": [],
        "errorCode": error_code,
    }
