"""Long-poll event source.

Turns a "fetch next event" call into an endless async iterator of events:

- GatewayTimeout means no event arrived in time; poll again right away
- an event is yielded once, then polling continues
- any other error is raised to the consumer once, after which the source is
  exhausted and only raises StopAsyncIteration

An optional cancellation event is checked before every poll so a shutdown
ends the source at the next poll boundary.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .errors import GatewayTimeout
from .protocol.events import RemoteEvent

logger = logging.getLogger(__name__)

PollFn = Callable[[], Awaitable[RemoteEvent]]


class LongPollEventSource:
    """Lazy, infinite, non-restartable sequence of remote events."""

    def __init__(
        self,
        poll: PollFn,
        *,
        cancelled: asyncio.Event | None = None,
        label: str = "event feed",
    ):
        self._poll = poll
        self._cancelled = cancelled
        self.label = label
        self._exhausted = False
        self.polls = 0
        self.timeouts = 0

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __aiter__(self) -> LongPollEventSource:
        return self

    async def __anext__(self) -> RemoteEvent:
        while True:
            if self._exhausted:
                raise StopAsyncIteration
            if self._cancelled is not None and self._cancelled.is_set():
                logger.debug(f"{self.label}: cancelled after {self.polls} polls")
                self._exhausted = True
                raise StopAsyncIteration

            self.polls += 1
            try:
                event = await self._poll()
            except GatewayTimeout:
                self.timeouts += 1
                logger.debug(f"{self.label}: poll timed out, polling again")
                await asyncio.sleep(0)
                continue
            except Exception:
                self._exhausted = True
                raise
            return event
