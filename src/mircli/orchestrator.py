"""Top-level fetch orchestrator.

Drives one browser session through
``LAUNCHED → NAVIGATING → EARLY_SNAPSHOT → SETTLING → CHALLENGE_CHECK →
FINAL_SNAPSHOT → DONE`` and produces a ``RunResult``. The session-ended
signal moves the run to ``CLOSED`` from any stage; from there the early
snapshot is kept if one exists, otherwise the run fails.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Callable, Iterator
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError

from mircli.browser.cancellation import listening
from mircli.browser.challenge import ChallengeVerdict, detect_challenge
from mircli.browser.dom_quiescence import dom_settle_budget, wait_for_dom_stable
from mircli.browser.fingerprint import FingerprintPatcher
from mircli.browser.humanize import human_scroll, pre_navigation_pause
from mircli.browser.launcher import open_browser_session
from mircli.browser.metrics import StageTimer
from mircli.browser.navigation import NavigationRequest, navigate, normalize_url, wait_for_body
from mircli.browser.network_monitor import NetworkActivityMonitor
from mircli.browser.snapshot import SnapshotManager, SnapshotStage
from mircli.browser.stealth import build_browser_profile
from mircli.exceptions import MircliError
from mircli.models.results import RunResult, RunStatus
from mircli.models.states import SessionState, can_transition

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage, Dialog, Page

    from mircli.browser.launcher import BrowserSession
    from mircli.browser.stealth import BrowserProfile
    from mircli.settings.config import Settings

logger = logging.getLogger(__name__)
page_logger = logging.getLogger("mircli.page")

SessionFactory = Callable[["Settings", "BrowserProfile"], AbstractAsyncContextManager["BrowserSession"]]


class SessionOrchestrator:
    """Runs the launch → capture → persist pipeline for a single URL.

    Args:
        settings: Resolved settings.
        rng: Randomness for profile selection, pauses and scroll jitter.
            Defaults to ``random.Random(settings.stealth.seed)``.
        session_factory: Async context manager factory yielding a ``BrowserSession``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        rng: random.Random | None = None,
        session_factory: SessionFactory = open_browser_session,
    ) -> None:
        self.settings = settings
        self._rng = rng or random.Random(settings.stealth.seed)
        self._session_factory = session_factory
        self._state = SessionState.LAUNCHED
        self._result = RunResult()

    @property
    def state(self) -> SessionState:
        return self._state

    async def run(self, url: str | None = None, output_path: Path | None = None) -> RunResult:
        """Fetch *url* and persist exactly one snapshot to *output_path*.

        Fatal errors (launch, navigation, no snapshot at all) are logged and
        reported through ``RunResult.status == FAILED`` / ``RunResult.error``.
        """
        result = self._result = RunResult(
            url=url or "",
            output_path=str(output_path or Path(self.settings.output.path)),
        )
        self._state = SessionState.LAUNCHED
        timer = StageTimer()

        try:
            result.url = normalize_url(url, self.settings.default_url)
            profile = build_browser_profile(self.settings, rng=self._rng)
            async with contextlib.AsyncExitStack() as stack:
                with timer.stage("launch"):
                    session = await stack.enter_async_context(self._session_factory(self.settings, profile))
                result.states.append(self._state)
                await self._drive(session, Path(result.output_path), timer)
        except (MircliError, PlaywrightError) as exc:
            logger.error("Fetch failed: %s", exc)
            result.error = str(exc)
            result.status = RunStatus.FAILED
            if can_transition(self._state, SessionState.FAILED):
                self._transition(SessionState.FAILED)
        finally:
            result.timings_ms = timer.summary()
            result.completed_at = datetime.now(timezone.utc)
        return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _drive(self, session: BrowserSession, output_path: Path, timer: StageTimer) -> None:
        result = self._result
        page = session.page
        timing = self.settings.timing
        snapshots = SnapshotManager(page, session.ended)

        with self._diagnostics(page):
            await self._prepare_page(session)

            if self._advance(session, SessionState.NAVIGATING):
                with timer.stage("navigate"):
                    await navigate(page, NavigationRequest(result.url, timing.navigation_timeout_ms))
                await wait_for_body(page, min(timing.navigation_timeout_ms, timing.body_wait_cap_ms))

            if self._advance(session, SessionState.EARLY_SNAPSHOT):
                await snapshots.capture_early()

            if self._advance(session, SessionState.SETTLING):
                await self._jitter(page)
                await self._settle(session, timer)

            if self._advance(session, SessionState.CHALLENGE_CHECK):
                result.challenge = await self._scan(page, timer)

            self._advance(session, SessionState.FINAL_SNAPSHOT)
            try:
                with timer.stage("final-capture"):
                    await snapshots.capture_final()
            finally:
                result.warnings.extend(snapshots.warnings)

            saved = snapshots.persist(output_path)

        result.snapshot_stage = saved.stage.value
        result.bytes_written = saved.byte_length
        if saved.stage is SnapshotStage.FINAL:
            result.status = RunStatus.COMPLETE
        else:
            result.status = RunStatus.DEGRADED
            self._warn("Final capture unavailable; saved early snapshot instead")
        self._transition(SessionState.DONE)

    async def _prepare_page(self, session: BrowserSession) -> None:
        stealth = self.settings.stealth
        if stealth.apply_patches:
            patcher = FingerprintPatcher(
                languages=self.settings.browser.languages,
                webgl_vendor=stealth.webgl_vendor,
                webgl_renderer=stealth.webgl_renderer,
            )
            if not await patcher.apply(session.page):
                self._result.warnings.append("Fingerprint patches were not applied")
        if session.profile.viewport:
            await session.page.set_viewport_size(session.profile.viewport)
        await pre_navigation_pause(self._rng)

    async def _jitter(self, page: Page) -> None:
        if not self.settings.stealth.human_scroll:
            return
        try:
            await human_scroll(page, self._rng)
        except PlaywrightError as exc:
            logger.debug("Scroll jitter skipped: %s", exc)

    async def _settle(self, session: BrowserSession, timer: StageTimer) -> None:
        """Network idle-like wait, then DOM quiescence. Errors count as settled."""
        timing = self.settings.timing
        try:
            monitor = NetworkActivityMonitor(
                session.cdp,
                idle_ms=timing.network_idle_ms,
                ceiling_ms=timing.network_ceiling_ms,
            )
            with timer.stage("idle-like"):
                await monitor.wait_for_idle_like(session.ended)
            if session.ended.is_set:
                return

            quiet_ms, wall_ms = dom_settle_budget(
                timing.settle_wait_ms,
                timing.navigation_timeout_ms,
                quiet_cap_ms=timing.dom_quiet_cap_ms,
                wall_cap_ms=timing.dom_wall_cap_ms,
            )
            with timer.stage("dom-stable"):
                dom = await wait_for_dom_stable(session.page, session.ended, quiet_ms=quiet_ms, wall_ms=wall_ms)
            if dom.reason == "error":
                self._warn("DOM settlement not confirmed; proceeding")
        except Exception as exc:
            self._warn(f"Settlement wait failed, treating page as settled: {exc}")

    async def _scan(self, page: Page, timer: StageTimer) -> ChallengeVerdict:
        try:
            with timer.stage("challenge"):
                verdict = await detect_challenge(page)
        except Exception as exc:
            self._warn(f"Challenge scan failed; verdict unknown: {exc}")
            return ChallengeVerdict(error=str(exc))
        if verdict.detected:
            self._result.warnings.append(verdict.describe())
        return verdict

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _advance(self, session: BrowserSession, target: SessionState) -> bool:
        """Move to *target* unless the session has ended; returns whether the stage should run."""
        if self._state is SessionState.CLOSED:
            return False
        if session.closed:
            self._result.session_end_reason = session.ended.reason or "page closed"
            self._transition(SessionState.CLOSED)
            return False
        self._transition(target)
        return True

    def _transition(self, target: SessionState) -> None:
        if not can_transition(self._state, target):
            raise RuntimeError(f"Illegal session transition {self._state.value} -> {target.value}")
        logger.debug("State %s -> %s", self._state.value, target.value)
        self._state = target
        self._result.states.append(target)

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self._result.warnings.append(message)

    # ------------------------------------------------------------------
    # Page diagnostics
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _diagnostics(self, page: Page) -> Iterator[None]:
        handlers: dict[str, Callable[..., Any]] = {
            "console": _log_console,
            "pageerror": _log_page_error,
            "crash": _log_crash,
            "dialog": _dismiss_dialog,
        }
        with listening(page, handlers):
            yield


def _log_console(message: ConsoleMessage) -> None:
    page_logger.info("[page:%s] %s", message.type, message.text)


def _log_page_error(error: Any) -> None:
    logger.error("Page pageerror: %s", error)


def _log_crash(_page: Any) -> None:
    logger.error("Page crashed")


async def _dismiss_dialog(dialog: Dialog) -> None:
    with contextlib.suppress(PlaywrightError):
        await dialog.dismiss()


def fetch_page(
    url: str | None,
    *,
    settings: Settings | None = None,
    output_path: Path | None = None,
    rng: random.Random | None = None,
) -> RunResult:
    """Synchronous entry point: run one fetch session to completion."""
    if settings is None:
        from mircli.settings import get_settings

        settings = get_settings()
    orchestrator = SessionOrchestrator(settings, rng=rng)
    return asyncio.run(orchestrator.run(url, output_path))
