"""HTTP middleware that enforces auth on protected API routes."""

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.api.errors import ApiErrorCode, to_error_payload
from app.api.http_setup import error_response
from app.auth.service import AuthService

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

PUBLIC_PATHS = frozenset(
    {
        "/api/health",
        "/api/v1/users/register",
        "/api/v1/users/login",
        "/api/v1/users/refresh-token",
    }
)


def _extract_bearer_token(authorization: str) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def extract_access_token(request: Request) -> str:
    """Return the access token from its cookie or the Authorization header."""
    return (request.cookies.get(ACCESS_TOKEN_COOKIE) or "").strip() or (
        _extract_bearer_token(request.headers.get("authorization", ""))
    )


def create_auth_middleware(service: AuthService) -> Callable:
    """Create middleware function that validates access tokens."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Validate auth for protected API paths and attach user to request state."""
        path = request.url.path
        if request.method == "OPTIONS":
            return await call_next(request)
        if not path.startswith("/api/") or path in PUBLIC_PATHS:
            return await call_next(request)

        token = extract_access_token(request)
        if not token:
            return error_response(
                401, ApiErrorCode.AUTH_MISSING_TOKEN, "Unauthorized request"
            )

        try:
            user = await run_in_threadpool(service.authenticate_access_token, token)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=to_error_payload(exc.detail, exc.status_code),
            )

        request.state.user = user
        return await call_next(request)

    return auth_middleware
