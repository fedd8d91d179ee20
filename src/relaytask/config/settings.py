"""
config/settings.py — relaytask Runtime Settings

Merges an optional YAML file with RELAYTASK_* environment variables.
Pydantic-powered — all fields are validated and typed.

  - SchedulerConfig rejects negative concurrency and out-of-range queue caps
  - LoggingConfig normalises and validates the level name
  - validate_all() performs cross-field checks and raises ConfigError with
    a numbered list of every problem found
  - load_settings() respects RELAYTASK_CONFIG as a fallback when no explicit
    config_path argument is given
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


# ─────────────────────────────────────────────────────────────────────────────
# Limits
# ─────────────────────────────────────────────────────────────────────────────

MAX_PENDING = 2**32 - 1
UNBOUNDED_CONCURRENCY = 2**32

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerConfig(BaseModel):
    """
    max_concurrency  Tasks allowed in flight at once. 0 means unbounded.
    max_pending      Queue capacity; add() fails once it is reached.
    """
    max_concurrency: int = 1
    max_pending: int = MAX_PENDING

    @field_validator("max_concurrency")
    @classmethod
    def _non_negative_concurrency(cls, v: int) -> int:
        if v < 0:
            raise ValueError("scheduler.max_concurrency must be >= 0 (0 = unbounded)")
        return v

    @field_validator("max_pending")
    @classmethod
    def _bounded_pending(cls, v: int) -> int:
        if not (1 <= v <= MAX_PENDING):
            raise ValueError(f"scheduler.max_pending must be between 1 and {MAX_PENDING}")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper

    @field_validator("max_file_size_mb", "backup_count")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("logging.max_file_size_mb and logging.backup_count must be >= 1")
        return v


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    relaytask runtime settings.

    Sources, highest priority first: RELAYTASK_* environment variables,
    .env file, constructor arguments (the YAML sections passed in by
    load_settings), field defaults. Nested fields use a double underscore,
    e.g. RELAYTASK_SCHEDULER__MAX_CONCURRENCY=4, and are merged key by key
    over the YAML section.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAYTASK_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the YAML file handed in as init kwargs.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("scheduler", mode="before")
    @classmethod
    def _coerce_scheduler(cls, v: Any) -> Any:
        return SchedulerConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def effective_max_concurrency(self) -> int:
        """Concurrency cap as the scheduler applies it (0 → unbounded)."""
        if self.scheduler.max_concurrency == 0:
            return UNBOUNDED_CONCURRENCY
        return self.scheduler.max_concurrency

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    def validate_all(self) -> None:
        """
        Cross-field validation. Raises ConfigError listing every problem found.

        Field validators catch type/value errors at parse time; this catches
        combinations that are individually valid but cannot work together.
        """
        errors: list[str] = []

        if (
            self.scheduler.max_concurrency > 1
            and self.scheduler.max_pending < self.scheduler.max_concurrency
        ):
            errors.append(
                f"scheduler.max_pending ({self.scheduler.max_pending}) is smaller "
                f"than scheduler.max_concurrency ({self.scheduler.max_concurrency}); "
                f"concurrency slots can never all be filled."
            )

        if not self.logging.log_dir.strip():
            errors.append("logging.log_dir must not be empty.")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nrelaytask configuration is invalid — {len(errors)} "
                f"problem(s) found:\n\n{numbered}\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"scheduler", "logging"}

_singleton: Optional[Settings] = None
_singleton_lock = threading.Lock()


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument
      2. RELAYTASK_CONFIG environment variable
      3. Default: config/relaytask.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("RELAYTASK_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/relaytask.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from YAML + environment and store them as the singleton."""
    global _singleton
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading it from the default
    config path on first use.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            yaml_data = _load_yaml(_resolve_config_path(None))
            _singleton = Settings(
                **{k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
            )
        return _singleton


def reset_settings() -> None:
    """Drop the cached singleton (used by tests)."""
    global _singleton
    with _singleton_lock:
        _singleton = None
