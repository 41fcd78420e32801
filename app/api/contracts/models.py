"""Pydantic API contracts used in request bodies, responses and OpenAPI."""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class ApiModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiErrorResponse(ApiModel):
    """Stable failure envelope for API responses."""

    status_code: int = Field(description="HTTP status code")
    message: str = Field(description="Human-readable error message")
    success: Literal[False] = False
    errors: list[Any] = Field(default_factory=list)
    error_code: str = Field(description="Machine-readable error code")


class ApiResponse(ApiModel, Generic[DataT]):
    """Stable success envelope for API responses."""

    status_code: int
    data: DataT
    message: str = "Success"
    success: bool = True

    @classmethod
    def build(
        cls, data: DataT, message: str, status_code: int = 200
    ) -> "ApiResponse[DataT]":
        """Wrap payload in the envelope, deriving success from status code."""
        return cls(
            status_code=status_code,
            data=data,
            message=message,
            success=status_code < 400,
        )


class PublicUser(ApiModel):
    """User profile with credential and session fields removed."""

    id: str
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    created_at: int
    updated_at: int


class LoginRequest(ApiModel):
    """Login request payload; one of username or email is required."""

    username: str | None = None
    email: str | None = None
    password: str = ""


class RefreshRequest(ApiModel):
    """Refresh request payload; the cookie takes precedence over the body."""

    refresh_token: str | None = None


class LoginData(ApiModel):
    """Login response payload."""

    user: PublicUser
    access_token: str
    refresh_token: str


class TokenPairData(ApiModel):
    """Refresh response payload."""

    access_token: str
    refresh_token: str


class EmptyData(ApiModel):
    """Empty payload for operations without a result body."""


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]
