"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AuthConfig:
    """Credential lifecycle configuration."""

    secret_key: str
    issuer: str
    session_token_ttl_seconds: int
    verification_ttl_seconds: int
    password_reset_ttl_seconds: int
    cookie_name: str
    post_verification_redirect_url: str
    admin_username: str
    admin_email: str
    admin_password: str


@dataclass(frozen=True)
class StoreConfig:
    """Document store connection settings."""

    mongodb_uri: str
    mongodb_db: str


@dataclass(frozen=True)
class EmailConfig:
    """Outbound SMTP settings. Empty host means dev mode (log only)."""

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_use_tls: bool
    from_email: str
    from_name: str
    public_base_url: str


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    state_sqlite_path: str
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int
    expose_internal_errors: bool


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    store: StoreConfig
    email: EmailConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        secret_key = (
            os.getenv("AUTH_SECRET_KEY", "").strip() or "dev-insecure-secret-change-me"
        )
        issuer = os.getenv("AUTH_ISSUER", "ticketing").strip() or "ticketing"
        session_ttl = int(os.getenv("AUTH_SESSION_TOKEN_TTL_SECONDS", "3600"))
        verification_ttl = int(os.getenv("AUTH_VERIFICATION_TTL_SECONDS", "300"))
        reset_ttl = int(os.getenv("AUTH_PASSWORD_RESET_TTL_SECONDS", "300"))
        cookie_name = os.getenv("AUTH_COOKIE_NAME", "jwt_token").strip() or "jwt_token"
        redirect_url = (
            os.getenv("AUTH_POST_VERIFICATION_REDIRECT_URL", "").strip()
            or "http://localhost:3000/verified"
        )
        admin_username = os.getenv("AUTH_ADMIN_USERNAME", "admin").strip() or "admin"
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", "admin@localhost.local").strip()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "").strip()

        mongodb_uri = os.getenv("MONGODB_URI", "").strip()
        mongodb_db = os.getenv("MONGODB_DB", "ticketing").strip() or "ticketing"

        smtp_host = os.getenv("SMTP_HOST", "").strip()
        smtp_port = int(os.getenv("SMTP_PORT", "587"))
        smtp_user = os.getenv("SMTP_USER", "").strip()
        smtp_password = os.getenv("SMTP_PASSWORD", "")
        smtp_use_tls = _env_flag("SMTP_USE_TLS", "1")
        from_email = os.getenv("EMAIL_FROM", "").strip() or smtp_user
        from_name = os.getenv("EMAIL_FROM_NAME", "Ticketing").strip() or "Ticketing"
        public_base_url = (
            os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").strip().rstrip("/")
        )

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))
        state_sqlite_path = (
            os.getenv("STATE_SQLITE_PATH", "runtime/app_state.db").strip()
            or "runtime/app_state.db"
        )
        login_rate_limit_max_attempts = int(
            os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5")
        )
        login_rate_limit_window_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "300")
        )
        login_rate_limit_lock_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "600")
        )

        return AppConfig(
            auth=AuthConfig(
                secret_key=secret_key,
                issuer=issuer,
                session_token_ttl_seconds=session_ttl,
                verification_ttl_seconds=verification_ttl,
                password_reset_ttl_seconds=reset_ttl,
                cookie_name=cookie_name,
                post_verification_redirect_url=redirect_url,
                admin_username=admin_username,
                admin_email=admin_email,
                admin_password=admin_password,
            ),
            store=StoreConfig(mongodb_uri=mongodb_uri, mongodb_db=mongodb_db),
            email=EmailConfig(
                smtp_host=smtp_host,
                smtp_port=smtp_port,
                smtp_user=smtp_user,
                smtp_password=smtp_password,
                smtp_use_tls=smtp_use_tls,
                from_email=from_email,
                from_name=from_name,
                public_base_url=public_base_url,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                state_sqlite_path=state_sqlite_path,
                login_rate_limit_max_attempts=login_rate_limit_max_attempts,
                login_rate_limit_window_seconds=login_rate_limit_window_seconds,
                login_rate_limit_lock_seconds=login_rate_limit_lock_seconds,
                expose_internal_errors=_env_flag("EXPOSE_INTERNAL_ERRORS"),
            ),
        )
