"""Per-stage wall-clock timings for a fetch session.

Each stage is timed with ``StageTimer.stage(name)``; the elapsed time is
logged at INFO (``navigate: 812ms``) and kept for ``RunResult.timings_ms``.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Iterator

logger = logging.getLogger(__name__)


class StageTimer:
    """Collects named stage durations in milliseconds."""

    def __init__(self) -> None:
        self._timings: dict[str, int] = {}

    @contextlib.contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block, recording it even when the block raises."""
        start = time.monotonic()
        try:
            yield
        finally:
            elapsed = int((time.monotonic() - start) * 1000)
            self._timings[name] = self._timings.get(name, 0) + elapsed
            logger.info("%s: %dms", name, elapsed)

    def get(self, name: str) -> int | None:
        return self._timings.get(name)

    def summary(self) -> dict[str, int]:
        """Return a copy of all recorded timings."""
        return dict(self._timings)
