"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Connection settings for the shared database server."""

    url: str = "sqlite:///data/section_pulse.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 3600
    # SQLite only: tenant schemas are attached as <dir>/<schema>.db
    sqlite_schema_dir: Path | None = None

    @property
    def dialect(self) -> str:
        """Backend name from the URL, e.g. 'postgresql', 'mysql', 'sqlite'."""
        return self.url.split(":", 1)[0].split("+", 1)[0]


class PulseConfig(BaseModel):
    """Section state machine thresholds."""

    pause_after_minutes: int = 5
    end_after_minutes: int = 60
    timezone: str = "UTC"
    diagnose_on_reconcile: bool = True
    diagnostics_lookback_days: int = 7
    recent_days_limit: int = 30

    @field_validator(
        "pause_after_minutes",
        "end_after_minutes",
        "diagnostics_lookback_days",
        "recent_days_limit",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive number")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the zone database cannot resolve."""
        if v.upper() == "UTC":
            return "UTC"
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def pause_before_end(self) -> "PulseConfig":
        if self.pause_after_minutes >= self.end_after_minutes:
            raise ValueError("pause_after_minutes must be smaller than end_after_minutes")
        return self


class SchedulerConfig(BaseModel):
    """Reconciliation sweep cadence and fan-out."""

    reconcile_interval_minutes: int = 1
    max_workers: int = 4
    run_on_start: bool = True

    @field_validator("reconcile_interval_minutes", "max_workers")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive number")
        return v


class StaticTenant(BaseModel):
    """A tenant listed directly in configuration."""

    key: str
    schema_name: str


class TenantsConfig(BaseModel):
    """Where the tenant directory reads active schemas from."""

    source: Literal["registry", "static"] = "registry"
    static: list[StaticTenant] = Field(default_factory=list)


class ApiConfig(BaseModel):
    """Read API server settings."""

    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Observability
    logfire_token: str = ""
    environment: str = "development"

    # Nested configuration sections
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    pulse: PulseConfig = Field(default_factory=PulseConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    tenants: TenantsConfig = Field(default_factory=TenantsConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m section_pulse init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["database", "pulse", "scheduler", "tenants", "api"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name] or {}

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
