"""Idle-like network readiness from CDP request-lifecycle events.

Playwright's ``networkidle`` never fires on pages holding WebSocket or
EventSource connections open, and its fixed 500 ms window is too eager for
chatty SPAs. ``NetworkActivityMonitor`` counts in-flight requests from the
``Network.*`` CDP events itself, ignores streaming transports entirely, and
declares readiness once the count has stayed at zero for ``idle_ms``. A hard
``ceiling_ms`` bounds the wait, and the shared session-ended signal cancels it.

The result is advisory timing only: there is no success/failure distinction.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

from mircli.browser.cancellation import Emitter, SessionEndedSignal, WaitOutcome, listening

logger = logging.getLogger(__name__)

STREAMING_RESOURCE_TYPES: frozenset[str] = frozenset({"WebSocket", "EventSource"})
STREAMING_URL_PREFIXES: tuple[str, ...] = ("ws://", "wss://")


class NetworkEventKind(str, Enum):
    STARTED = "started"
    FINISHED = "finished"
    FAILED = "failed"


# CDP method -> lifecycle kind
CDP_EVENTS: dict[str, NetworkEventKind] = {
    "Network.requestWillBeSent": NetworkEventKind.STARTED,
    "Network.loadingFinished": NetworkEventKind.FINISHED,
    "Network.loadingFailed": NetworkEventKind.FAILED,
}


@dataclass(frozen=True)
class NetworkEvent:
    """One request-lifecycle event."""

    kind: NetworkEventKind
    url: str = ""
    resource_type: str = ""
    request_id: str | None = None

    @property
    def is_streaming(self) -> bool:
        return self.resource_type in STREAMING_RESOURCE_TYPES or self.url.lower().startswith(STREAMING_URL_PREFIXES)

    @classmethod
    def from_cdp(cls, kind: NetworkEventKind, params: dict[str, Any] | None) -> "NetworkEvent":
        params = params or {}
        request = params.get("request") or {}
        response = params.get("response") or {}
        return cls(
            kind=kind,
            url=str(request.get("url") or response.get("url") or ""),
            resource_type=str(params.get("type") or ""),
            request_id=params.get("requestId"),
        )


class InFlightCounter:
    """Non-negative count of requests in flight.

    With request ids, a repeated start (redirect hop) is counted once and a
    finish seen before its start cancels that start, so matched starts and
    finishes in any order net to zero. Anonymous events fall back to a plain
    counter floored at zero.
    """

    def __init__(self) -> None:
        self._pending: set[str] = set()
        self._settled_early: set[str] = set()
        self._anonymous = 0

    @property
    def value(self) -> int:
        return len(self._pending) + self._anonymous

    def started(self, request_id: str | None = None) -> int:
        if request_id is None:
            self._anonymous += 1
        elif request_id in self._settled_early:
            self._settled_early.discard(request_id)
        else:
            self._pending.add(request_id)
        return self.value

    def settled(self, request_id: str | None = None) -> int:
        if request_id is None:
            self._anonymous = max(0, self._anonymous - 1)
        elif request_id in self._pending:
            self._pending.discard(request_id)
        else:
            self._settled_early.add(request_id)
        return self.value


@dataclass
class NetworkIdleResult:
    """How the idle-like wait ended, for logging."""

    outcome: WaitOutcome
    in_flight: int
    elapsed_ms: int

    @property
    def reason(self) -> str:
        return {
            WaitOutcome.COMPLETED: "idle",
            WaitOutcome.TIMED_OUT: "ceiling",
            WaitOutcome.CANCELLED: "session-ended",
        }[self.outcome]


class NetworkActivityMonitor:
    """Tracks in-flight requests on a CDP session and waits for an idle-like state.

    Args:
        cdp: Playwright ``CDPSession`` (or any emitter of ``Network.*`` events).
        idle_ms: How long the in-flight count must stay at zero.
        ceiling_ms: Wall-clock bound on the whole wait.
    """

    def __init__(self, cdp: Emitter, *, idle_ms: int = 1_000, ceiling_ms: int = 4_000) -> None:
        self._cdp = cdp
        self.idle_ms = idle_ms
        self.ceiling_ms = ceiling_ms
        self.counter = InFlightCounter()
        self._excluded: set[str] = set()
        self._idle: asyncio.Event | None = None
        self._timer: asyncio.TimerHandle | None = None

    def record(self, event: NetworkEvent) -> None:
        """Apply one lifecycle event to the counter and the idle timer."""
        if event.kind is NetworkEventKind.STARTED:
            if event.is_streaming:
                if event.request_id is not None:
                    self._excluded.add(event.request_id)
                return
            self.counter.started(event.request_id)
            self._disarm()
            return

        if event.request_id is not None and event.request_id in self._excluded:
            self._excluded.discard(event.request_id)
            return
        if event.is_streaming:
            return
        if self.counter.settled(event.request_id) == 0:
            self._arm()

    async def wait_for_idle_like(self, signal: SessionEndedSignal) -> NetworkIdleResult:
        """Wait until idle-like, the ceiling elapses, or the session ends."""
        started = time.monotonic()
        self._idle = asyncio.Event()
        handlers = {method: partial(self._on_cdp_event, kind) for method, kind in CDP_EVENTS.items()}

        with listening(self._cdp, handlers):
            if self.counter.value == 0:
                self._arm()
            try:
                race = await signal.race(self._idle.wait(), timeout=self.ceiling_ms / 1000)
            finally:
                self._disarm()
                self._idle = None

        result = NetworkIdleResult(
            outcome=race.outcome,
            in_flight=self.counter.value,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info("idle-like: %s after %dms (%d in flight)", result.reason, result.elapsed_ms, result.in_flight)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_cdp_event(self, kind: NetworkEventKind, params: dict[str, Any] | None = None) -> None:
        self.record(NetworkEvent.from_cdp(kind, params))

    def _arm(self) -> None:
        if self._idle is None:
            return
        self._disarm()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.idle_ms / 1000, self._idle.set)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
