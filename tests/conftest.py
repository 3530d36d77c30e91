"""mircli test configuration: shared fixtures and fake Playwright objects."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

import pytest


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_LEGACY_VARS = ("MIRCLI_HEADLESS", "HTTP_PROXY", "PROXY", "USER_DATA_DIR", "CHROME_PATH", "MIRCLI_ENV")


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch):
    """Clear the settings LRU cache and legacy env shorthands between tests."""
    from mircli.settings.config import get_settings

    for name in _LEGACY_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def settings(tmp_path):
    """Settings pointed at a temporary profile/output with zero-ish timings."""
    from mircli.settings.config import Settings

    s = Settings()
    s.browser.user_data_dir = str(tmp_path / "profile")
    s.output.path = str(tmp_path / "out.html")
    s.timing.navigation_timeout_ms = 5_000
    s.timing.settle_wait_ms = 0
    s.timing.network_idle_ms = 10
    s.timing.network_ceiling_ms = 200
    s.stealth.human_scroll = False
    return s


# ---------------------------------------------------------------------------
# Fake emitters
# ---------------------------------------------------------------------------


class FakeEmitter:
    """Records ``on`` / ``remove_listener`` and lets tests emit events."""

    def __init__(self) -> None:
        self.listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, f: Callable[..., Any]) -> None:
        self.listeners[event].append(f)

    def remove_listener(self, event: str, f: Callable[..., Any]) -> None:
        self.listeners[event].remove(f)

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self.listeners[event]):
            handler(*args)

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self.listeners[event])
        return sum(len(v) for v in self.listeners.values())


@pytest.fixture()
def emitter() -> FakeEmitter:
    return FakeEmitter()


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that launch a real browser")
