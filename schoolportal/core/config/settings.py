# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for SchoolPortal.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from schoolportal.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.portal.reset_code_ttl_minutes)
    10
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firebase Admin SDK configuration.

    Firebase provides three collaborators: the identity provider (Auth),
    the document store (Firestore) and the push gateway (FCM).

    Attributes:
        credentials_json: Service account JSON content or a path to it.
            Falls back to GOOGLE_APPLICATION_CREDENTIALS when empty.
        project_id: Firebase project identifier.
    """

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore",
    )

    credentials_json: SecretStr | None = None
    project_id: str | None = None


class CloudinarySettings(BaseSettings):
    """Cloudinary object storage configuration.

    Attributes:
        cloud_name: Cloudinary cloud name.
        api_key: API key.
        api_secret: API secret used to sign uploads.
        upload_folder: Folder receiving delivered documents.
        upload_preset: Preset used by signed browser uploads.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore",
    )

    cloud_name: str = ""
    api_key: str = ""
    api_secret: SecretStr = SecretStr("")
    upload_folder: str = "myc-docs"
    upload_preset: str = "myc_signed"


class SMTPSettings(BaseSettings):
    """Outbound email configuration.

    Attributes:
        host: SMTP server hostname. Email is disabled when empty.
        port: SMTP server port.
        username: SMTP authentication username.
        password: SMTP authentication password.
        use_tls: Use STARTTLS.
        from_email: Sender email address.
        from_name: Sender display name.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str = ""
    port: int = 587
    username: str = ""
    password: SecretStr = SecretStr("")
    use_tls: bool = True
    from_email: str = "no-reply@example.com"
    from_name: str = "SchoolPortal"

    @property
    def is_configured(self) -> bool:
        """Whether enough is set to actually send email."""
        return bool(self.host and self.from_email)


class PortalSettings(BaseSettings):
    """Business rules of the portal.

    Attributes:
        project_name: Name shown in emails.
        frontend_url: Base URL of the web client (links in emails).
        code_salt: Salt mixed into password-reset code hashes.
        code_hash_rounds: bcrypt cost for reset code hashes.
        reset_code_ttl_minutes: Lifetime of a password-reset code.
        reset_max_attempts: Verification attempts allowed per code.
        invite_ttl_hours: Lifetime of an invite token.
        list_default_limit: Default page size for request listings.
        list_max_limit: Maximum page size for request/notification listings.
        users_max_limit: Maximum page size for user listings.
        allowed_niveaux: Study levels accepted for students.
        max_children: Maximum students attached to one parent at creation.
        max_request_attachments: Attachments accepted on request submission.
        max_upload_bytes: Largest document accepted by the upload endpoint.
    """

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        extra="ignore",
    )

    project_name: str = "Accès Ynov"
    frontend_url: str = "http://localhost:3000"
    code_salt: SecretStr = SecretStr("change-me")
    code_hash_rounds: int = Field(default=12, ge=4, le=31)
    reset_code_ttl_minutes: int = 10
    reset_max_attempts: int = 5
    invite_ttl_hours: int = 48
    list_default_limit: int = 100
    list_max_limit: int = 200
    users_max_limit: int = 100
    allowed_niveaux: list[str] = ["Licence", "Master", "Cycle ingénieur", "MBA"]
    max_children: int = 10
    max_request_attachments: int = 6
    max_upload_bytes: int = 20 * 1024 * 1024


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    Attributes:
        enabled: Apply rate limits at all.
        requests_per_minute: Maximum requests per minute per client.
        storage_uri: slowapi storage backend (memory:// or redis://...).
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        extra="ignore",
    )

    enabled: bool = True
    requests_per_minute: int = 60
    storage_uri: str = "memory://"


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True
    allow_methods: list[str] = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8080
    workers: int = 2
    reload: bool = False


class BackgroundSettings(BaseSettings):
    """Best-effort background dispatch configuration.

    Attributes:
        max_pending: Queue bound; tasks dispatched beyond it are dropped.
        workers: Number of concurrent worker tasks draining the queue.
    """

    model_config = SettingsConfigDict(
        env_prefix="BACKGROUND_",
        extra="ignore",
    )

    max_pending: int = 1000
    workers: int = 4


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Attributes:
        environment: Deployment environment.
        debug: Enable debug mode.
        log_level: Logging level.
        document_store: Document store backend.
        firebase: Firebase settings.
        cloudinary: Object storage settings.
        smtp: Email settings.
        portal: Business rules.
        rate_limit: Rate limiting settings.
        cors: CORS settings.
        api: API server settings.
        background: Background dispatch settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "test", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    document_store: Literal["firestore", "memory"] = "firestore"

    # Subsettings - loaded with their own env prefixes
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)
    cloudinary: CloudinarySettings = Field(default_factory=CloudinarySettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    portal: PortalSettings = Field(default_factory=PortalSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)
    background: BackgroundSettings = Field(default_factory=BackgroundSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if self.portal.code_salt.get_secret_value() == "change-me":
                raise ValueError(
                    "Reset code salt must be changed from default in production. "
                    "Set PORTAL_CODE_SALT environment variable."
                )
            if self.document_store == "memory":
                raise ValueError("The in-memory document store cannot be used in production.")
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
