from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.contracts import HealthResponse
from app.api.http_setup import register_exception_handlers, register_http_middleware
from app.auth.middleware import create_auth_middleware
from app.auth.router import create_auth_router
from app.auth.service import AuthService
from app.auth.tokens import TokenIssuer
from app.core.config import AppConfig
from app.core.logging import setup_logging
from app.core.mongo_migrations import apply_mongo_migrations
from app.media.storage import LocalMediaStorage
from app.users.repository import UserRepository

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def _media_dir(config: AppConfig) -> Path:
    media_dir = Path(config.media.media_dir)
    if not media_dir.is_absolute():
        media_dir = APP_ROOT / media_dir
    return media_dir


def create_app(config: AppConfig = APP_CONFIG, app_root: Path = APP_ROOT) -> FastAPI:
    app = FastAPI(title="Vidstream Accounts API", version="1.0.0")
    apply_mongo_migrations()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    media_storage = LocalMediaStorage(
        media_dir=_media_dir(config),
        url_prefix=config.media.url_prefix,
        max_bytes=config.security.upload_max_bytes,
    )
    app.mount(
        config.media.url_prefix,
        StaticFiles(directory=str(media_storage.media_dir)),
        name="media",
    )

    auth_service = AuthService(
        repo=UserRepository(app_root),
        tokens=TokenIssuer(config.auth),
        media=media_storage,
    )
    app.middleware("http")(create_auth_middleware(auth_service))
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    app.include_router(
        create_auth_router(auth_service, cookie_secure=config.auth.cookie_secure)
    )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    return app


app = create_app()
