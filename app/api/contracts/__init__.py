"""Public API request and response contracts."""

from app.api.contracts.models import (
    ApiErrorResponse,
    ApiModel,
    ApiResponse,
    EmptyData,
    HealthResponse,
    LoginData,
    LoginRequest,
    PublicUser,
    RefreshRequest,
    TokenPairData,
)

__all__ = [
    "ApiErrorResponse",
    "ApiModel",
    "ApiResponse",
    "EmptyData",
    "HealthResponse",
    "LoginData",
    "LoginRequest",
    "PublicUser",
    "RefreshRequest",
    "TokenPairData",
]
