"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Access and refresh tokens are signed with two independent secrets
(ACCESS_TOKEN_SECRET / REFRESH_TOKEN_SECRET) so that a leak of one cannot be
used to forge the other. TokenService refuses to start if they are equal.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "marketplace"


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "marketplace-api"
    jwt_audience: str = "marketplace-client"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 604800

    access_token_secret: str = ""
    refresh_token_secret: str = ""


class AuthSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    temporary_password_length: int = 12
    temporary_password_ttl_seconds: int = 86400
    reset_token_ttl_seconds: int = 600

    max_failed_logins: int = 5
    lockout_seconds: int = 7200
    max_refresh_tokens: int = 5

    # Upper bound on how long a best-effort email may run in the background
    email_send_timeout_seconds: float = 10.0


class SweeperSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sweeper_enabled: bool = True
    sweeper_initial_delay_seconds: float = 10.0
    temporary_password_sweep_interval_seconds: float = 21600.0
    reset_token_sweep_interval_seconds: float = 3600.0


class OAuthProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # When empty, Google access tokens are not checked against tokeninfo
    google_oauth_client_id: str = ""
    google_tokeninfo_timeout_seconds: float = 5.0


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@craftzlk.com"
    zepto_from_name: str = "CraftzLK"
    email_http_timeout_seconds: float = 5.0


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "marketplace-api"

    # Base URL of the storefront; password reset links point here
    frontend_url: str = "http://localhost:3000"

    # Credentials are required for the refresh cookie, so origins must be explicit
    cors_origins: list[str] = ["http://localhost:3000"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    jwt: Optional[JWTSettings] = None
    auth: Optional[AuthSettings] = None
    sweeper: Optional[SweeperSettings] = None
    oauth: Optional[OAuthProviderSettings] = None
    email: Optional[EmailSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.auth is None:
            self.auth = AuthSettings()
        if self.sweeper is None:
            self.sweeper = SweeperSettings()
        if self.oauth is None:
            self.oauth = OAuthProviderSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
