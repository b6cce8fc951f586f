"""Unit tests for LongPollEventSource."""

from __future__ import annotations

import asyncio

import pytest

from webrtc_gateway_runtime.errors import GatewayTimeout, RemoteRejected, TransportError
from webrtc_gateway_runtime.longpoll import LongPollEventSource
from webrtc_gateway_runtime.protocol.events import EntityKind, parse_event

OPEN = parse_event(EntityKind.DATA, {"event": "OPEN"})
CLOSE = parse_event(EntityKind.DATA, {"event": "CLOSE"})


def scripted(*results):
    """Poll function returning/raising the given results in order."""
    script = list(results)
    calls = []

    async def poll():
        calls.append(len(calls))
        item = script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    poll.calls = calls  # type: ignore[attr-defined]
    return poll


# =============================================================================
# Timeout absorption
# =============================================================================


class TestTimeoutAbsorption:
    """A GatewayTimeout is never visible to the consumer."""

    @pytest.mark.asyncio
    async def test_timeouts_then_event(self):
        """k timeouts followed by an event yield exactly that event after k+1 polls."""
        poll = scripted(GatewayTimeout(), GatewayTimeout(), GatewayTimeout(), OPEN)
        source = LongPollEventSource(poll)

        event = await anext(source)

        assert event == OPEN
        assert len(poll.calls) == 4
        assert source.polls == 4
        assert source.timeouts == 3

    @pytest.mark.asyncio
    async def test_events_in_order(self):
        poll = scripted(OPEN, GatewayTimeout(), CLOSE)
        source = LongPollEventSource(poll)

        assert await anext(source) == OPEN
        assert await anext(source) == CLOSE

    @pytest.mark.asyncio
    async def test_endless_timeouts_yield_to_loop(self):
        """A poll that times out without suspending still lets other tasks run."""
        ticks = []

        async def poll():
            raise GatewayTimeout()

        async def ticker():
            while True:
                ticks.append(len(ticks))
                await asyncio.sleep(0)

        other = asyncio.create_task(ticker())
        source = LongPollEventSource(poll)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(anext(source), 0.05)
        other.cancel()

        assert ticks
        assert source.timeouts > 0
        assert not source.exhausted

    @pytest.mark.asyncio
    async def test_lazy(self):
        """Nothing is polled until the consumer asks."""
        poll = scripted(OPEN)
        LongPollEventSource(poll)
        assert poll.calls == []


# =============================================================================
# Terminal errors
# =============================================================================


class TestTerminalErrors:
    """Any other error ends the source."""

    @pytest.mark.asyncio
    async def test_error_propagates_once(self):
        poll = scripted(RemoteRejected(404, "Not Found"), OPEN)
        source = LongPollEventSource(poll)

        with pytest.raises(RemoteRejected):
            await anext(source)

        assert source.exhausted
        with pytest.raises(StopAsyncIteration):
            await anext(source)
        # The remaining scripted event was never polled.
        assert len(poll.calls) == 1

    @pytest.mark.asyncio
    async def test_error_after_events(self):
        poll = scripted(OPEN, GatewayTimeout(), TransportError("connection reset"))
        source = LongPollEventSource(poll)

        assert await anext(source) == OPEN
        with pytest.raises(TransportError, match="connection reset"):
            await anext(source)
        with pytest.raises(StopAsyncIteration):
            await anext(source)

    @pytest.mark.asyncio
    async def test_async_for_stops_on_error(self):
        poll = scripted(OPEN, CLOSE, TransportError("gone"))
        received = []

        with pytest.raises(TransportError):
            async for event in LongPollEventSource(poll):
                received.append(event)

        assert received == [OPEN, CLOSE]


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    """The cancellation signal is checked between polls."""

    @pytest.mark.asyncio
    async def test_cancelled_before_first_poll(self):
        cancelled = asyncio.Event()
        cancelled.set()
        poll = scripted(OPEN)
        source = LongPollEventSource(poll, cancelled=cancelled)

        with pytest.raises(StopAsyncIteration):
            await anext(source)
        assert poll.calls == []
        assert source.exhausted

    @pytest.mark.asyncio
    async def test_cancelled_between_timeouts(self):
        cancelled = asyncio.Event()

        async def poll():
            cancelled.set()
            raise GatewayTimeout()

        source = LongPollEventSource(poll, cancelled=cancelled)

        with pytest.raises(StopAsyncIteration):
            await anext(source)
        assert source.polls == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_keeps_source_usable(self):
        """Cancelling an in-flight poll is not a terminal error."""
        gate = asyncio.Event()

        async def poll():
            await gate.wait()
            return OPEN

        source = LongPollEventSource(poll)
        pending = asyncio.create_task(anext(source))
        await asyncio.sleep(0)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        assert not source.exhausted
        gate.set()
        assert await anext(source) == OPEN
