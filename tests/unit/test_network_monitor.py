"""Tests for in-flight request counting and the idle-like network wait."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from mircli.browser.cancellation import SessionEndedSignal, WaitOutcome
from mircli.browser.network_monitor import (
    InFlightCounter,
    NetworkActivityMonitor,
    NetworkEvent,
    NetworkEventKind,
)


def _started(request_id: str, url: str = "https://example.com/a.js", type_: str = "Script") -> dict:
    return {"requestId": request_id, "request": {"url": url}, "type": type_}


class TestInFlightCounter:
    def test_matched_events_net_to_zero_in_any_order(self):
        events = [("s", "1"), ("s", "2"), ("f", "1"), ("f", "2"), ("s", "3"), ("f", "3")]
        for order in itertools.permutations(events):
            counter = InFlightCounter()
            for kind, rid in order:
                value = counter.started(rid) if kind == "s" else counter.settled(rid)
                assert value >= 0
            assert counter.value == 0

    def test_redirect_hop_counted_once(self):
        counter = InFlightCounter()
        counter.started("1")
        counter.started("1")
        assert counter.value == 1
        assert counter.settled("1") == 0

    def test_anonymous_events_floor_at_zero(self):
        counter = InFlightCounter()
        assert counter.settled() == 0
        assert counter.started() == 1
        assert counter.settled() == 0
        assert counter.settled() == 0


class TestNetworkEvent:
    def test_from_cdp_request(self):
        event = NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("7", type_="Document"))
        assert event.request_id == "7"
        assert event.url == "https://example.com/a.js"
        assert event.resource_type == "Document"
        assert not event.is_streaming

    @pytest.mark.parametrize(
        "url, type_",
        [("wss://example.com/socket", "Other"), ("https://example.com/feed", "EventSource"), ("ws://x", "")],
    )
    def test_streaming_detection(self, url, type_):
        event = NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("1", url, type_))
        assert event.is_streaming

    def test_from_cdp_tolerates_missing_params(self):
        event = NetworkEvent.from_cdp(NetworkEventKind.FINISHED, None)
        assert event.request_id is None
        assert event.url == ""


class TestNetworkActivityMonitor:
    @pytest.mark.anyio
    async def test_quiet_network_reports_idle(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=10, ceiling_ms=1_000)
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.outcome is WaitOutcome.COMPLETED
        assert result.reason == "idle"
        assert result.in_flight == 0

    @pytest.mark.anyio
    async def test_pending_request_hits_ceiling(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=10, ceiling_ms=50)
        monitor.record(NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("1")))
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.outcome is WaitOutcome.TIMED_OUT
        assert result.reason == "ceiling"
        assert result.in_flight == 1

    @pytest.mark.anyio
    async def test_idle_after_last_request_finishes(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=20, ceiling_ms=2_000)
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, emitter.emit, "Network.requestWillBeSent", _started("1"))
        loop.call_later(0.06, emitter.emit, "Network.loadingFinished", {"requestId": "1"})
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.outcome is WaitOutcome.COMPLETED
        assert result.in_flight == 0

    @pytest.mark.anyio
    async def test_failed_request_settles(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=10, ceiling_ms=2_000)
        monitor.record(NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("1")))
        asyncio.get_running_loop().call_later(
            0.02, emitter.emit, "Network.loadingFailed", {"requestId": "1", "errorText": "net::ERR_ABORTED"}
        )
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.outcome is WaitOutcome.COMPLETED

    @pytest.mark.anyio
    async def test_streaming_connections_are_ignored(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=10, ceiling_ms=500)
        monitor.record(NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("ws", "wss://example.com/live", "WebSocket")))
        monitor.record(NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("es", "https://example.com/s", "EventSource")))
        assert monitor.counter.value == 0
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.reason == "idle"
        # finishing an excluded id must not drive the counter
        monitor.record(NetworkEvent(NetworkEventKind.FINISHED, request_id="ws"))
        assert monitor.counter.value == 0

    @pytest.mark.anyio
    async def test_session_end_cancels_wait(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=10, ceiling_ms=5_000)
        monitor.record(NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("1")))
        signal = SessionEndedSignal()
        asyncio.get_running_loop().call_later(0.02, signal.fire, "page closed")
        result = await monitor.wait_for_idle_like(signal)
        assert result.outcome is WaitOutcome.CANCELLED
        assert result.reason == "session-ended"
        assert result.elapsed_ms < 2_000

    @pytest.mark.anyio
    async def test_already_ended_session_returns_immediately(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=1_000, ceiling_ms=5_000)
        signal = SessionEndedSignal()
        signal.fire()
        result = await monitor.wait_for_idle_like(signal)
        assert result.outcome is WaitOutcome.CANCELLED

    @pytest.mark.anyio
    async def test_listeners_removed_after_wait(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=10, ceiling_ms=100)
        await monitor.wait_for_idle_like(SessionEndedSignal())
        assert emitter.listener_count() == 0

    @pytest.mark.anyio
    async def test_idle_not_declared_before_window(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=50, ceiling_ms=2_000)
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, emitter.emit, "Network.requestWillBeSent", _started("1"))
        loop.call_later(0.06, emitter.emit, "Network.loadingFinished", {"requestId": "1"})
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.outcome is WaitOutcome.COMPLETED
        assert result.elapsed_ms >= 100

    @pytest.mark.anyio
    async def test_open_websocket_does_not_hold_past_ceiling(self, emitter):
        monitor = NetworkActivityMonitor(emitter, idle_ms=5_000, ceiling_ms=80)
        monitor.record(NetworkEvent.from_cdp(NetworkEventKind.STARTED, _started("ws", "wss://example.com/live", "WebSocket")))
        result = await monitor.wait_for_idle_like(SessionEndedSignal())
        assert result.reason == "ceiling"
        assert result.in_flight == 0
        assert result.elapsed_ms < 2_000
