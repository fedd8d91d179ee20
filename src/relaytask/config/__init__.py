"""
config/ — relaytask settings (pydantic-settings + YAML)
"""

from relaytask.config.settings import (
    ConfigError,
    LoggingConfig,
    SchedulerConfig,
    Settings,
    get_settings,
    load_settings,
)

__all__ = [
    "ConfigError",
    "LoggingConfig",
    "SchedulerConfig",
    "Settings",
    "get_settings",
    "load_settings",
]
