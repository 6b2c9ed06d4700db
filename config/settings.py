"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``RESOLVEX_`` prefix; GCP / infrastructure settings use
their canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the ResolveX complaint service.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``RESOLVEX_``; infra keys use
    their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="RESOLVEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── GCP / media ────────────────────────────────────────────────────
    gcp_project_id: str = Field(default="", validation_alias="GCP_PROJECT_ID")
    media_bucket: str = Field(default="", validation_alias="MEDIA_BUCKET")
    media_prefix: str = "complaints/"
    media_upload_timeout_seconds: float = 20.0

    # ── Redis (complaint store) ────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    store_namespace: str = "resolvex:"

    # ── NLP classifier ─────────────────────────────────────────────────
    classifier_url: str = Field(
        default="https://resolvex-nlp-part.onrender.com/classify",
        validation_alias="CLASSIFIER_URL",
    )
    classifier_timeout_seconds: float = 8.0
    fallback_department_email: str = "grievances@gov.in"
    fallback_department_name: str = "General Grievance Cell"

    # ── E-mail (Gmail API) ─────────────────────────────────────────────
    gmail_client_id: str = Field(default="", validation_alias="GMAIL_CLIENT_ID")
    gmail_client_secret: str = Field(default="", validation_alias="GMAIL_CLIENT_SECRET")
    gmail_refresh_token: str = Field(default="", validation_alias="GMAIL_REFRESH_TOKEN")
    email_user: str = Field(default="", validation_alias="EMAIL_USER")
    email_send_timeout_seconds: float = 30.0
    notification_dead_letter_limit: int = Field(default=500, ge=1)

    # ── Listing ────────────────────────────────────────────────────────
    default_page_size: int = Field(default=2, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # ── Keepalive ──────────────────────────────────────────────────────
    api_url: str = Field(default="", validation_alias="API_URL")
    keepalive_extra_urls: list[str] = Field(default_factory=list)
    keepalive_interval_seconds: float = 14 * 60
    enable_keepalive: bool = True

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=3000, validation_alias="PORT")
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def keepalive_urls(self) -> list[str]:
        """URLs pinged by the keepalive scheduler: our own health probe,
        then the classifier host, then anything configured explicitly."""
        urls: list[str] = []
        if self.api_url:
            urls.append(self.api_url.rstrip("/") + "/health")
        if self.classifier_url:
            from urllib.parse import urlsplit

            parts = urlsplit(self.classifier_url)
            if parts.scheme and parts.netloc:
                urls.append(f"{parts.scheme}://{parts.netloc}/")
        urls.extend(self.keepalive_extra_urls)
        return urls


# Module-level singleton: import ``settings`` everywhere.
settings = Settings()
