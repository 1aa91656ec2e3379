"""
Configuration Management for Budget Ledger

Settings come from LEDGER_* environment variables and an optional .env file.

DESIGN DECISION: One settings object for the whole process.
The ledger engine, the recurring materializer and the command line all
read the same settings object, so a rule like the 30-day edit window
is defined exactly once.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///./ledger.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )
    connect_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made when opening the first connection"
    )


class LedgerSettings(BaseSettings):
    """Business rules enforced by the ledger engine."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    immutable_after_days: int = Field(
        default=30,
        ge=0,
        description="Cleared transactions older than this lock amount/account/type"
    )
    bulk_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum number of ids accepted by a bulk operation"
    )
    default_currency: str = Field(
        default="PHP",
        min_length=3,
        max_length=3,
        description="Currency assigned to accounts opened without one"
    )
    balance_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Differences at or below this are treated as equal"
    )

    @field_validator("default_currency")
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()


class AppSettings(BaseSettings):
    """
    Process-wide options: environment, log level, debug.

    Read from the environment and .env.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local log output"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """
    Everything configurable, grouped by concern.

    Sub-settings are built lazily on first access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Shared Settings instance, built once per process.

    Tests call get_settings.cache_clear() after changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build each settings group and report which ones fail.

    Returns a dict of {setting_name: is_valid}, with an extra
    "<name>_error" entry for every group that failed to load.
    """
    results = {}
    settings = get_settings()

    for name in ("database", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
