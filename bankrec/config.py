"""
Application settings.

Values come from environment variables or the .env file under
BANKREC_BASE_PATH; per-run reconciliation settings start from the
``default_*`` fields here.
"""

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get(
    "BANKREC_BASE_PATH",
    Path.home() / "Documents" / "bankrec"
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Process-wide settings; see the field groups below."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Reconciliation defaults (overridable per run)
    default_amount_tolerance: Decimal = Field(default=Decimal("0"), ge=0)
    default_date_window_days: int = Field(default=0, ge=0)
    default_date_format: Literal["auto", "yyyy-mm-dd", "dd/mm/yyyy", "mm/dd/yyyy"] = Field(default="auto")
    default_currency: str = Field(default="USD")
    default_strategy: Literal["strict", "smart"] = Field(default="smart")

    # Validation
    validation_sample_size: int = Field(default=1000, gt=0)
    invalid_rate_threshold: float = Field(default=0.10, ge=0, le=1)

    # Suggestions
    suggestion_min_score: int = Field(default=40)

    # Storage
    log_dir: Path = Field(default=APP_BASE_PATH / "logs")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Settings singleton; call get_settings.cache_clear() after editing .env."""
    return Settings()
