"""Early/final markup capture and artifact resolution.

The early capture is taken right after ``domcontentloaded`` purely for
resilience; the final capture is taken after settlement. Exactly one
snapshot is persisted at the end of the run: the final one when it
succeeded, otherwise the early one.

Final-capture fallback chain:

1. page already closed → keep early capture, or fail if there is none;
2. ``page.content()``;
3. on a Playwright error with the page still open →
   ``document.documentElement.outerHTML`` via ``evaluate``;
4. page closed during (or failure of) that retry → keep early capture,
   or propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from mircli.exceptions import CaptureError

if TYPE_CHECKING:
    from playwright.async_api import Page

    from mircli.browser.cancellation import SessionEndedSignal

logger = logging.getLogger(__name__)

_OUTER_HTML_JS = "() => document.documentElement.outerHTML"


class SnapshotStage(str, Enum):
    EARLY = "early"
    FINAL = "final"


@dataclass
class Snapshot:
    """Markup captured at one stage of the run."""

    content: str
    stage: SnapshotStage
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def byte_length(self) -> int:
        return len(self.content.encode("utf-8"))


class SnapshotManager:
    """Owns the early and final captures of one page.

    Args:
        page: Playwright ``Page`` being captured.
        signal: Session-ended signal; once fired the page is treated as closed.
    """

    def __init__(self, page: Page, signal: SessionEndedSignal) -> None:
        self._page = page
        self._signal = signal
        self.early: Snapshot | None = None
        self.final: Snapshot | None = None
        self.warnings: list[str] = []

    @property
    def page_closed(self) -> bool:
        return self._signal.is_set or self._page.is_closed()

    async def capture_early(self) -> Snapshot | None:
        """Capture the document right after navigation; failures are non-fatal."""
        try:
            html = await self._page.content()
        except PlaywrightError as exc:
            self._warn(f"Early snapshot failed: {exc}")
            return None
        self.early = Snapshot(html, SnapshotStage.EARLY)
        logger.info("Captured early snapshot (%d bytes)", self.early.byte_length)
        return self.early

    async def capture_final(self) -> Snapshot | None:
        """Capture the settled document, falling back per the chain above.

        Returns:
            The final snapshot, or ``None`` when the early snapshot is kept instead.

        Raises:
            CaptureError: The page closed before extraction and no early snapshot exists.
            PlaywrightError: Both retrieval paths failed and no early snapshot exists.
        """
        if self.page_closed:
            return self._keep_early("Page was closed before final extraction; kept early snapshot.")

        try:
            html = await self._page.content()
        except PlaywrightError as exc:
            self._warn(f"page.content() failed, fallback to evaluate: {exc}")
            if self.page_closed:
                return self._keep_early("Page closed during fallback extraction; kept early snapshot.", cause=exc)
            try:
                html = await self._page.evaluate(_OUTER_HTML_JS)
            except PlaywrightError as retry_exc:
                if self.early is None:
                    raise
                return self._keep_early(f"Fallback extraction failed ({retry_exc}); kept early snapshot.")

        self.final = Snapshot(html, SnapshotStage.FINAL)
        logger.info("Captured final snapshot (%d bytes)", self.final.byte_length)
        return self.final

    def resolve(self) -> Snapshot | None:
        """Return the authoritative snapshot: final when present, else early."""
        return self.final or self.early

    def persist(self, path: Path) -> Snapshot:
        """Write the authoritative snapshot to *path* as UTF-8.

        Raises:
            CaptureError: When no capture succeeded or the file cannot be written.
        """
        snapshot = self.resolve()
        if snapshot is None:
            raise CaptureError("No snapshot captured; nothing to save")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(snapshot.content, encoding="utf-8")
        except OSError as exc:
            raise CaptureError(f"Could not write snapshot to {path}: {exc}") from exc
        logger.info("Saved %s snapshot to %s (%d bytes)", snapshot.stage.value, path, snapshot.byte_length)
        return snapshot

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _keep_early(self, message: str, cause: BaseException | None = None) -> None:
        if self.early is None:
            if cause is not None:
                raise cause
            raise CaptureError("Page was closed before extraction and no snapshot was saved")
        self._warn(message)
        return None

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)
