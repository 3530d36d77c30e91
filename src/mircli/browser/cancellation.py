"""Session-ended cancellation token and scoped event subscriptions.

Every suspendable wait in a fetch session is raced against one shared
``SessionEndedSignal``: the first of page-closed, context-closed or
browser-disconnected. ``Subscription`` / ``listening()`` attach handlers to
Playwright-style emitters (anything with ``on`` / ``remove_listener``) and
guarantee removal when the scope exits, whichever way it exits.

Usage::

    signal = SessionEndedSignal()
    with signal.watch(page, context):
        race = await signal.race(do_work(), timeout=4.0)
        if race.outcome is WaitOutcome.CANCELLED:
            ...
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Emitter(Protocol):
    """Minimal event-emitter surface shared by Playwright objects."""

    def on(self, event: str, f: Callable[..., Any]) -> None: ...

    def remove_listener(self, event: str, f: Callable[..., Any]) -> None: ...


class WaitOutcome(str, Enum):
    """How a raced wait concluded."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class RaceResult(Generic[T]):
    """Outcome of ``SessionEndedSignal.race`` plus the work's value when it completed."""

    outcome: WaitOutcome
    value: T | None = None


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class Subscription:
    """A single ``emitter.on(event, handler)`` registration, removed exactly once.

    Args:
        emitter: Object exposing ``on`` and ``remove_listener``.
        event: Event name.
        handler: Callback; the same object is passed to ``remove_listener``.
    """

    def __init__(self, emitter: Emitter, event: str, handler: Callable[..., Any]) -> None:
        self._emitter = emitter
        self._event = event
        self._handler = handler
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def open(self) -> "Subscription":
        if not self._active:
            self._emitter.on(self._event, self._handler)
            self._active = True
        return self

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            self._emitter.remove_listener(self._event, self._handler)
        except Exception:
            # The emitter may already be torn down (closed page / detached CDP session)
            logger.debug("remove_listener(%s) failed", self._event, exc_info=True)

    def __enter__(self) -> "Subscription":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@contextlib.contextmanager
def listening(emitter: Emitter, handlers: Mapping[str, Callable[..., Any]]) -> Iterator[list[Subscription]]:
    """Subscribe every ``event -> handler`` pair on *emitter* for the duration of the block."""
    with contextlib.ExitStack() as stack:
        subs = [stack.enter_context(Subscription(emitter, event, handler)) for event, handler in handlers.items()]
        yield subs


# ---------------------------------------------------------------------------
# Session-ended signal
# ---------------------------------------------------------------------------


class SessionEndedSignal:
    """Single-fire cancellation token shared by every wait of one session."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str = ""

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def fire(self, reason: str = "session ended") -> None:
        """Set the signal; later calls keep the first reason."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.warning("Session ended: %s", reason)

    async def wait(self) -> None:
        await self._event.wait()

    @contextlib.contextmanager
    def watch(self, page: Emitter | None = None, context: Emitter | None = None, browser: Emitter | None = None) -> Iterator[None]:
        """Fire on page ``close``, context ``close`` or browser ``disconnected`` while inside the block."""
        sources: list[tuple[Emitter, str, str]] = []
        if page is not None:
            sources.append((page, "close", "page closed"))
        if context is not None:
            sources.append((context, "close", "browser context closed"))
        if browser is not None:
            sources.append((browser, "disconnected", "browser disconnected"))

        with contextlib.ExitStack() as stack:
            for emitter, event, reason in sources:
                stack.enter_context(Subscription(emitter, event, self._firing(reason)))
            yield

    def _firing(self, reason: str) -> Callable[..., None]:
        def handler(*_args: Any) -> None:
            self.fire(reason)

        return handler

    async def race(self, work: Awaitable[T], *, timeout: float | None = None) -> RaceResult[T]:
        """Race *work* against this signal and an optional *timeout* (seconds).

        The first to finish wins; the others are cancelled and drained before
        returning. Exceptions raised by *work* propagate to the caller.
        """
        if self.is_set:
            if inspect.iscoroutine(work):
                work.close()
            return RaceResult(WaitOutcome.CANCELLED)

        work_task = asyncio.ensure_future(work)
        ended_task = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work_task, ended_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (work_task, ended_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work_task, ended_task, return_exceptions=True)

        if work_task in done:
            return RaceResult(WaitOutcome.COMPLETED, work_task.result())
        if ended_task in done:
            return RaceResult(WaitOutcome.CANCELLED)
        return RaceResult(WaitOutcome.TIMED_OUT)
