# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PROD_SITE_MODES = {"prod", "production", "beta", "live"}


class Settings(BaseSettings):
    app_name: str = BRAND_NAME

    # Environment (derived from SITE_MODE)
    environment: str = (
        "production"
        if (os.getenv("SITE_MODE", "local") or "").strip().lower() in PROD_SITE_MODES
        else "development"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(
        default="sqlite+pysqlite:///./eventa.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL for the events datastore",
    )
    redis_url: str = "redis://localhost:6379"

    # Reference timezone for all "now"-relative date phrases
    home_timezone: str = Field(default="Australia/Melbourne", alias="HOME_TIMEZONE")

    # OpenAI
    openai_api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY")
    openai_moderation_model: str = Field(
        default="gpt-4.1-mini",
        alias="OPENAI_MODERATION_MODEL",
        description="Model used by the background moderation task",
    )
    embedding_provider: str = Field(default="openai", alias="EMBEDDING_PROVIDER")

    # External providers
    external_providers_raw: str = Field(
        default="stub_web",
        alias="EXTERNAL_PROVIDERS",
        description="Comma-separated list of enabled external providers",
    )
    google_api_key: Optional[str] = Field(default=None, alias="GOOGLE_API_KEY")
    google_pse_id: Optional[str] = Field(default=None, alias="GOOGLE_PSE_ID")
    eventbrite_token: Optional[str] = Field(default=None, alias="EVENTBRITE_TOKEN")

    cors_allowed_origins_raw: str = Field(
        default="http://localhost:3000",
        alias="CORS_ALLOWED_ORIGINS",
        description="Comma-separated list of allowed browser origins",
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        return str(value or "INFO").strip().upper()

    @property
    def external_providers(self) -> List[str]:
        return [
            token.strip().lower()
            for token in (self.external_providers_raw or "").split(",")
            if token.strip()
        ]

    @property
    def cors_allowed_origins(self) -> List[str]:
        return [o.strip() for o in (self.cors_allowed_origins_raw or "").split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
