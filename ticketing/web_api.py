from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketing.api.contracts import HealthResponse
from ticketing.api.http_setup import register_exception_handlers, register_http_middleware
from ticketing.auth.middleware import create_auth_middleware
from ticketing.auth.notifier import Notifier, create_notifier
from ticketing.auth.rate_limiter import LoginRateLimiter
from ticketing.auth.repository import CredentialStore, MongoCredentialStore, create_credential_store
from ticketing.auth.router import create_users_router
from ticketing.auth.service import CredentialAuthority
from ticketing.core.config import AppConfig
from ticketing.core.logging import setup_logging
from ticketing.core.mongo_migrations import migrate_configured_store

LOGGER = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None,
    *,
    store: CredentialStore | None = None,
    notifier: Notifier | None = None,
    state_root: Path | None = None,
) -> FastAPI:
    """Wire configuration, collaborators and routes into a FastAPI app."""
    config = config or AppConfig.from_env()
    store = store or create_credential_store(config.store)
    notifier = notifier or create_notifier(config.email)

    authority = CredentialAuthority(
        store=store,
        notifier=notifier,
        config=config.auth,
        public_base_url=config.email.public_base_url,
    )
    state_db_path = ((state_root or Path.cwd()) / config.security.state_sqlite_path).resolve()
    login_rate_limiter = LoginRateLimiter(
        database_path=state_db_path,
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if isinstance(store, MongoCredentialStore):
            await migrate_configured_store(config.store)
        await authority.bootstrap_admin_user()
        try:
            yield
        finally:
            login_rate_limiter.close()
            if isinstance(store, MongoCredentialStore):
                await store.close()

    app = FastAPI(title="Ticketing Credentials API", version="1.0.0", lifespan=lifespan)
    app.state.authority = authority
    app.middleware("http")(create_auth_middleware(authority, cookie_name=config.auth.cookie_name))
    register_http_middleware(app, config=config, logger=LOGGER)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_exception_handlers(app, config=config, logger=LOGGER)

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    app.include_router(
        create_users_router(
            authority,
            login_rate_limiter,
            cookie_name=config.auth.cookie_name,
            post_verification_redirect_url=config.auth.post_verification_redirect_url,
            secure_cookies=config.email.public_base_url.startswith("https://"),
        )
    )
    return app


def build_default_app() -> FastAPI:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    return create_app(config)
