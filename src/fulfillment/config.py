"""Application settings using Pydantic for environment-based configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# When installed in editable mode the project root is the repo root.
_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """Settings loaded from ``FULFILLMENT_*`` environment variables or ``.env``."""

    data_dir: Path = Field(
        default=_PROJECT_ROOT / "data", description="Directory holding the JSON stores"
    )
    currency: str = Field(default="UGX", description="Currency of every amount")

    # Cash custody
    default_cash_limit: int = Field(
        default=500_000, gt=0, description="Cash ceiling for newly onboarded agents"
    )
    cash_tolerance: int = Field(
        default=100, ge=0,
        description="Allowed gap between collected cash and order total before reconciliation flags it",
    )
    recent_deposits_window: int = Field(
        default=5, ge=0, description="Deposits shown in an agent's cash summary"
    )

    # Optimistic concurrency
    max_conflict_retries: int = Field(
        default=3, ge=1, description="Attempts for ledger writes that lose a version race"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")

    model_config = SettingsConfigDict(
        env_prefix="FULFILLMENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Currency must be a 3-letter ISO code, got '{v}'")
        return code


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (cached)."""
    return Settings()
