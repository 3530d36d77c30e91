"""Configuration loader for mircli using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags
  2. Environment variables (MIRCLI_* with __ for nesting)
  3. Legacy env shorthands (MIRCLI_HEADLESS, HTTP_PROXY / PROXY, USER_DATA_DIR, CHROME_PATH)
  4. settings.local.toml
  5. settings.<env>.toml
  6. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("MIRCLI_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "MIRCLI_ENV"
DEFAULT_ENV = "local"

DEFAULT_URL = "https://mircli.ru"
DEFAULT_PROFILE_DIR = Path.home() / ".mircli-chrome-profile"

# Shorthand env vars: (section, field, candidates)
_LEGACY_ENV: list[tuple[str, str, tuple[str, ...]]] = [
    ("browser", "headless", ("MIRCLI_HEADLESS",)),
    ("browser", "proxy", ("HTTP_PROXY", "PROXY")),
    ("browser", "user_data_dir", ("USER_DATA_DIR",)),
    ("browser", "chrome_path", ("CHROME_PATH",)),
]


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


def _legacy_env_overrides() -> dict[str, Any]:
    overrides: dict[str, dict[str, str]] = {}
    for section, key, candidates in _LEGACY_ENV:
        for name in candidates:
            value = os.getenv(name)
            if value:
                overrides.setdefault(section, {})[key] = value
                break
    return overrides


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class HeadlessMode(str, Enum):
    """Browser visibility: headful, classic headless, or Chromium's new headless."""

    OFF = "false"
    ON = "true"
    NEW = "new"

    @property
    def is_headless(self) -> bool:
        return self is not HeadlessMode.OFF


class BrowserSettings(BaseSettings):
    """Chromium launch settings."""

    model_config = SettingsConfigDict(env_prefix="MIRCLI_BROWSER__")

    headless: HeadlessMode = HeadlessMode.OFF
    proxy: str = ""
    user_data_dir: str = str(DEFAULT_PROFILE_DIR)
    chrome_path: str = ""
    locale: str = "ru-RU"
    languages: list[str] = Field(default_factory=lambda: ["ru-RU", "ru", "en-US", "en"])
    timezone_id: str = "Europe/Chisinau"
    accept_language: str = "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7"

    @field_validator("headless", mode="before")
    @classmethod
    def _coerce_headless(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TimingSettings(BaseSettings):
    """Time budgets, all in milliseconds."""

    model_config = SettingsConfigDict(env_prefix="MIRCLI_TIMING__")

    navigation_timeout_ms: int = Field(default=60_000, gt=0)
    settle_wait_ms: int = Field(default=7_000, ge=0)
    network_idle_ms: int = Field(default=1_000, ge=0)
    network_ceiling_ms: int = Field(default=4_000, gt=0)
    dom_quiet_cap_ms: int = Field(default=1_500, ge=0)
    dom_wall_cap_ms: int = Field(default=3_000, gt=0)
    body_wait_cap_ms: int = Field(default=5_000, ge=0)


class StealthSettings(BaseSettings):
    """Anti-detection configuration."""

    model_config = SettingsConfigDict(env_prefix="MIRCLI_STEALTH__")

    apply_patches: bool = True
    randomize_fingerprint: bool = True
    human_scroll: bool = True
    seed: int | None = None
    webgl_vendor: str = "Intel Inc."
    webgl_renderer: str = "Intel Iris OpenGL"


class OutputSettings(BaseSettings):
    """Artifact destination and end-of-run behaviour."""

    model_config = SettingsConfigDict(env_prefix="MIRCLI_OUTPUT__")

    path: str = "mircli.html"
    stay_open: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root mircli settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="MIRCLI_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    default_url: str = DEFAULT_URL

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    stealth: StealthSettings = Field(default_factory=StealthSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_layers(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files and legacy env vars before MIRCLI_* overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")
        legacy = _legacy_env_overrides()

        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, legacy, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Expand ``~`` in the profile directory."""
        self.browser.user_data_dir = str(Path(self.browser.user_data_dir).expanduser())
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
