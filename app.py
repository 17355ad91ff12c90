"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.oauth_clients import GoogleTokenVerifier
from repositories.user_repository import USERS_COLLECTION, UserRepository
from routes.admin_routes import router as admin_router
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from services.auth_service import AuthService
from services.token_service import TokenService
from shared.logging import get_logger, setup_logging
from workers.expiry_sweeper import ExpirySweeper

log = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    setup_logging(settings.logging, is_production=settings.is_production)

    # Fails fast on missing or shared signing secrets
    token_service = TokenService(settings.jwt)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]
        app.state.settings = settings

        user_repo = UserRepository(app.state.db[USERS_COLLECTION])
        await user_repo.ensure_indexes()

        email_http = HttpClient(
            "zeptomail", timeout=settings.email.email_http_timeout_seconds
        )
        oauth_http = HttpClient(
            "google", timeout=settings.oauth.google_tokeninfo_timeout_seconds
        )
        email_provider = ZeptoMailProvider(
            settings.email,
            email_http,
            app_url=settings.frontend_url,
            temporary_password_ttl_hours=settings.auth.temporary_password_ttl_seconds // 3600,
            reset_token_ttl_minutes=settings.auth.reset_token_ttl_seconds // 60,
        )
        auth_service = AuthService(
            user_repo,
            token_service,
            email_provider,
            settings.auth,
            frontend_url=settings.frontend_url,
            google_verifier=GoogleTokenVerifier(
                settings.oauth.google_oauth_client_id, oauth_http
            ),
        )
        app.state.auth_service = auth_service

        sweeper = None
        if settings.sweeper.sweeper_enabled:
            sweeper = ExpirySweeper(user_repo, settings.sweeper)
            await sweeper.start()
        app.state.sweeper = sweeper

        log.info("app_started", env=settings.env, db_name=settings.db.db_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if sweeper is not None:
            await sweeper.stop()
        await auth_service.drain()
        await email_http.aclose()
        await oauth_http.aclose()
        await mongo_client.close()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # The refresh cookie needs credentialed CORS, so origins are explicit
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(admin_router)

    return app
