"""Configuration settings using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str

    environment: Literal["development", "production"] = "development"

    # Invitation links
    site_url: str = "http://localhost:3000"
    invitation_accept_path: str = "/invitations/accept"
    invitation_expiry_days: int = 7

    # Email (for invitations)
    notification_backend: Literal["log", "smtp", "celery"] = "log"
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@orgroster.local"
    smtp_use_ssl: bool = False
    smtp_max_retries: int = 3

    @field_validator("site_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, v):
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @field_validator("invitation_expiry_days")
    @classmethod
    def _positive_expiry(cls, v: int) -> int:
        if v < 1:
            raise ValueError("INVITATION_EXPIRY_DAYS must be at least 1")
        return v

    @model_validator(mode="after")
    def _validate_production_settings(self) -> Settings:
        if self.environment != "production":
            return self

        if not self.site_url.startswith("https://"):
            raise ValueError("SITE_URL must use https in production")

        if self.notification_backend == "smtp" and not (self.smtp_user and self.smtp_password):
            raise ValueError("SMTP_USER/SMTP_PASSWORD must be set in production")

        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
