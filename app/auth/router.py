"""User account API router."""

from __future__ import annotations

from fastapi import (
    APIRouter,
    Body,
    Cookie,
    File,
    Form,
    Request,
    Response,
    UploadFile,
)

from app.api.contracts import (
    ApiErrorResponse,
    ApiResponse,
    EmptyData,
    LoginData,
    LoginRequest,
    PublicUser,
    RefreshRequest,
    TokenPairData,
)
from app.auth.middleware import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE
from app.auth.service import AuthService
from app.media.storage import MediaUpload


def _media_upload(file: UploadFile | None) -> MediaUpload | None:
    """Adapt a multipart file to the media storage input."""
    if file is None or not file.filename:
        return None
    return MediaUpload(filename=file.filename, stream=file.file)


def _set_session_cookies(
    response: Response, *, access_token: str, refresh_token: str, secure: bool
) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE, access_token, httponly=True, secure=secure
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE, refresh_token, httponly=True, secure=secure
    )


def create_auth_router(
    service: AuthService, *, cookie_secure: bool = True
) -> APIRouter:
    """Build user router with register/login/logout/refresh/current-user endpoints."""
    router = APIRouter(prefix="/api/v1/users", tags=["users"])

    @router.post(
        "/register",
        status_code=201,
        response_model=ApiResponse[PublicUser],
        responses={
            400: {"model": ApiErrorResponse},
            409: {"model": ApiErrorResponse},
        },
    )
    def register(
        full_name: str = Form(default="", alias="fullName"),
        email: str = Form(default=""),
        password: str = Form(default=""),
        username: str = Form(default=""),
        avatar: UploadFile | None = File(default=None),
        cover_image: UploadFile | None = File(default=None, alias="coverImage"),
    ) -> ApiResponse[PublicUser]:
        """Register a user with a required avatar and optional cover image."""
        user = service.register(
            full_name=full_name,
            email=email,
            password=password,
            username=username,
            avatar=_media_upload(avatar),
            cover_image=_media_upload(cover_image),
        )
        return ApiResponse[PublicUser].build(
            user, "User registered successfully", status_code=201
        )

    @router.post(
        "/login",
        response_model=ApiResponse[LoginData],
        responses={
            400: {"model": ApiErrorResponse},
            404: {"model": ApiErrorResponse},
        },
    )
    def login(req: LoginRequest, response: Response) -> ApiResponse[LoginData]:
        """Authenticate user, set session cookies and return the token pair."""
        session = service.login(
            username=req.username, email=req.email, password=req.password
        )
        _set_session_cookies(
            response,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            secure=cookie_secure,
        )
        return ApiResponse[LoginData].build(session, "User logged in successfully")

    @router.post(
        "/logout",
        response_model=ApiResponse[EmptyData],
        responses={401: {"model": ApiErrorResponse}},
    )
    def logout(request: Request, response: Response) -> ApiResponse[EmptyData]:
        """Invalidate the stored refresh token and clear session cookies."""
        user: PublicUser = request.state.user
        service.logout(user.id)
        for cookie_name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
            response.delete_cookie(cookie_name, httponly=True, secure=cookie_secure)
        return ApiResponse[EmptyData].build(EmptyData(), "User logged out")

    @router.post(
        "/refresh-token",
        response_model=ApiResponse[TokenPairData],
        responses={401: {"model": ApiErrorResponse}},
    )
    def refresh_token(
        response: Response,
        req: RefreshRequest | None = Body(default=None),
        refresh_cookie: str | None = Cookie(default=None, alias=REFRESH_TOKEN_COOKIE),
    ) -> ApiResponse[TokenPairData]:
        """Rotate the refresh token and issue a new token pair."""
        incoming = refresh_cookie or (req.refresh_token if req else None)
        pair = service.refresh(incoming)
        _set_session_cookies(
            response,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            secure=cookie_secure,
        )
        return ApiResponse[TokenPairData].build(pair, "Access token refreshed")

    @router.get(
        "/current-user",
        response_model=ApiResponse[PublicUser],
        responses={401: {"model": ApiErrorResponse}},
    )
    def current_user(request: Request) -> ApiResponse[PublicUser]:
        """Return the authenticated user's profile."""
        user: PublicUser = request.state.user
        return ApiResponse[PublicUser].build(user, "Current user fetched successfully")

    return router
