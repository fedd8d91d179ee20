"""
Root conftest — isolate RELAYTASK_* environment variables so that
configuration tests are not affected by the developer's or CI environment.
"""
import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_relaytask_env(monkeypatch):
    """Remove RELAYTASK_* env vars for every test and drop any cached
    Settings singleton. Also disables .env file loading so a local .env
    cannot leak into tests."""
    for var in list(os.environ):
        if var.upper().startswith("RELAYTASK_"):
            monkeypatch.delenv(var, raising=False)

    import relaytask.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_prefix="RELAYTASK_",
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()
