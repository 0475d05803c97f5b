"""
Configuration and settings for the Q&A service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    # Proxies whose X-Forwarded-For uvicorn trusts; uvicorn syntax.
    forwarded_allow_ips: str = Field(default="127.0.0.1")
    log_level: str = Field(default="INFO")

    # Admin credentials (required)
    admin_password: SecretStr
    admin_username: Optional[str] = Field(default=None)

    # Sessions
    session_secret: SecretStr
    session_cookie_name: str = Field(default="noor_session")
    # 8 hours
    session_max_age: int = Field(default=60 * 60 * 8, ge=60)
    session_same_site: Literal["lax", "strict", "none"] = Field(default="lax")
    session_https_only: bool = Field(default=True)

    # Key-value store
    store_backend: Literal["redis", "cos", "memory"]
    store_namespace: str = Field(default="questions")
    redis_url: Optional[str] = Field(default=None)

    # S3-compatible blob storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # HTTP surface
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    max_body_bytes: int = Field(default=5 * 1024 * 1024)
    login_rate_limit: int = Field(default=10, ge=1)
    # 15 minutes
    login_rate_window: int = Field(default=15 * 60, ge=1)
    min_question_length: int = Field(default=10, ge=1)

    @field_validator("admin_password", "session_secret")
    @classmethod
    def _not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def _check_store_parameters(self) -> "Settings":
        if self.store_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when STORE_BACKEND=redis")
        if self.store_backend == "cos":
            missing = [
                name.upper()
                for name in (
                    "cos_bucket",
                    "cos_region",
                    "cos_endpoint",
                    "aws_access_key_id",
                    "aws_secret_access_key",
                )
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    "missing blob storage settings: " + ", ".join(missing)
                )
        return self

    @property
    def cookie_secure(self) -> bool:
        # Browsers drop SameSite=None cookies that are not Secure.
        return self.session_https_only or self.session_same_site == "none"


def load_settings(**overrides) -> Settings:
    """Build settings, turning validation failures into a startup error."""
    try:
        return Settings(**overrides)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid service configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return load_settings()
