"""Layered configuration (TOML files, env vars, CLI overrides)."""

from mircli.settings.config import DEFAULT_URL, HeadlessMode, Settings, get_settings

__all__ = ["DEFAULT_URL", "HeadlessMode", "Settings", "get_settings"]
