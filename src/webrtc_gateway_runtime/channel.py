"""Closable command channel.

Each session reads its commands from one CommandChannel. Senders are the
operator (root session) and the Supervisor's broadcasts (children). Once a
channel is closed, sends raise ChannelClosed and the reading side ends after
draining what was already queued.
"""

from __future__ import annotations

import asyncio

from .errors import ChannelClosed
from .protocol.commands import Command

_CLOSED = object()


class CommandChannel:
    """Unbounded FIFO of commands with an explicit end."""

    def __init__(self, name: str = "channel"):
        self.name = name
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, command: Command) -> None:
        """Queue a command.

        Raises:
            ChannelClosed: If the channel was closed
        """
        if self._closed:
            raise ChannelClosed(f"{self.name} is closed")
        self._queue.put_nowait(command)

    def close(self) -> None:
        """End the channel. Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> CommandChannel:
        return self

    async def __anext__(self) -> Command:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so later readers also stop.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]
