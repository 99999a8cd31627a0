"""Application settings for Blogen.

All process-wide configuration is read from the environment (or a ``.env``
file) exactly once, validated by pydantic, and then passed around as a
``Settings`` instance. Route handlers get it through ``get_app_settings``.
"""

from functools import lru_cache
from pathlib import Path

from fastapi import Request
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env lives at the repository root, next to pyproject.toml
PROJECT_ROOT_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

CALLBACK_PATH = "/api/auth/shopify/callback"


class Settings(BaseSettings):
    """Validated process configuration."""

    # Shopify app credentials
    shopify_app_key: str = Field(..., min_length=1)
    shopify_app_secret: str = Field(..., min_length=1)
    shopify_app_url: str = Field(..., min_length=1)
    shopify_scopes: str = "read_content,write_content"
    shopify_api_version: str = "2024-01"
    shopify_verify_hmac: bool = False

    # Sessions and encryption at rest
    session_secret: str = Field(..., min_length=32)
    blogen_encryption_key: str = Field(..., min_length=1)

    database_url: str = "sqlite+aiosqlite:///./blogen.db"
    environment: str = "development"
    log_level: str = "INFO"
    upstream_timeout_seconds: float = Field(10.0, gt=0)
    blogen_debug: bool = False

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("shopify_app_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("SHOPIFY_APP_URL must be an absolute http(s) URL")
        return v

    @field_validator("shopify_scopes")
    @classmethod
    def normalize_scopes(cls, v: str) -> str:
        scopes = [scope.strip() for scope in v.split(",") if scope.strip()]
        if not scopes:
            raise ValueError("SHOPIFY_SCOPES must name at least one scope")
        return ",".join(scopes)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def callback_url(self) -> str:
        """Fixed OAuth redirect URI registered with Shopify."""
        return f"{self.shopify_app_url}{CALLBACK_PATH}"


@lru_cache
def get_settings() -> Settings:
    """Build the settings object once per process."""
    return Settings()


def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the app was created with."""
    return request.app.state.settings
