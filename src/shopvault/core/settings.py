"""Application settings and configuration.

This module defines all configuration options for the ShopVault service.
Settings are loaded from environment variables with sensible defaults.
Secrets (encryption key, OAuth client secret, cron secret) have no defaults
and are validated where they are used, so a misconfigured deployment fails
loudly on the first privileged request instead of at import time.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Fixed local-development frontends trusted outside production.
DEV_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="ShopVault", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="DEBUG")

    # Storage mode: "remote" uses the SQL database, "local" the JSON key/value file
    storage_mode: Literal["remote", "local"] = Field(default="remote", alias="STORAGE_MODE")
    database_url: str = Field(default="sqlite:///./shopvault.db", alias="DATABASE_URL")
    local_store_path: str = Field(default="./shopvault-local.json", alias="LOCAL_STORE_PATH")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Backup encryption (32-byte key shared by the backup codec and cookie cipher)
    backup_encryption_key: str | None = Field(default=None, alias="BACKUP_ENCRYPTION_KEY")
    max_backup_bytes: int = Field(default=50 * 1024 * 1024, alias="MAX_BACKUP_BYTES")
    max_encrypted_bytes: int = Field(default=100 * 1024 * 1024, alias="MAX_ENCRYPTED_BYTES")

    # Safety snapshots taken before a destructive restore
    safety_snapshot_ttl_seconds: int = Field(default=60 * 60, alias="SAFETY_SNAPSHOT_TTL_SECONDS")
    safety_snapshot_dir: str | None = Field(default=None, alias="SAFETY_SNAPSHOT_DIR")
    session_cookie_name: str = Field(default="shopvault_session", alias="SESSION_COOKIE_NAME")

    # CSRF origin validation
    app_url: str | None = Field(default=None, alias="APP_URL")
    preview_url: str | None = Field(default=None, alias="PREVIEW_URL")
    csrf_marker_header: str = Field(default="X-Requested-With", alias="CSRF_MARKER_HEADER")
    csrf_marker_value: str = Field(default="XMLHttpRequest", alias="CSRF_MARKER_VALUE")

    # Rate limiting (requests per window, per client identity and route)
    rate_limit_window_seconds: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_auth: int = Field(default=10, alias="RATE_LIMIT_AUTH")
    rate_limit_data: int = Field(default=30, alias="RATE_LIMIT_DATA")
    rate_limit_read: int = Field(default=60, alias="RATE_LIMIT_READ")
    rate_limit_upload: int = Field(default=5, alias="RATE_LIMIT_UPLOAD")
    rate_limit_sweep_interval_seconds: float = Field(
        default=300.0,
        alias="RATE_LIMIT_SWEEP_INTERVAL_SECONDS",
    )

    # Google OAuth / Drive
    google_client_id: str | None = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: str | None = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    google_redirect_uri: str | None = Field(default=None, alias="GOOGLE_REDIRECT_URI")
    google_service_account_email: str | None = Field(
        default=None,
        alias="GOOGLE_SERVICE_ACCOUNT_EMAIL",
    )
    google_service_account_private_key: str | None = Field(
        default=None,
        alias="GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY",
    )
    drive_folder_name: str = Field(default="ShopVault-Backups", alias="DRIVE_FOLDER_NAME")
    drive_http_timeout_seconds: float = Field(default=30.0, alias="DRIVE_HTTP_TIMEOUT_SECONDS")
    drive_cookie_name: str = Field(default="gdrive_session", alias="DRIVE_COOKIE_NAME")
    drive_cookie_max_age_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        alias="DRIVE_COOKIE_MAX_AGE_SECONDS",
    )

    # Scheduled daily backup
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")
    backup_retention_days: int = Field(default=30, alias="BACKUP_RETENTION_DAYS")

    # CORS configuration for web frontend access
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "X-Requested-With"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Return True when running as the production deployment."""
        return self.environment.lower() == "production"

    @property
    def allowed_origins(self) -> list[str]:
        """Return the frontends trusted to issue state-changing requests.

        Returns:
            Production URL (trailing slash stripped), the preview deployment
            and, outside production, the fixed local development origins.
        """
        origins: list[str] = []
        if self.app_url:
            origins.append(self.app_url.rstrip("/"))
        if self.preview_url:
            preview = self.preview_url.rstrip("/")
            if "://" not in preview:
                preview = f"https://{preview}"
            origins.append(preview)
        if not self.is_production:
            origins.extend(DEV_ORIGINS)
        return origins


settings = Settings()
