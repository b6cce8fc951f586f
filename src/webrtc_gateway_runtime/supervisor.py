"""Session supervisor.

Owns the connection sessions spawned under the Peer session:
- each child gets its own command channel and asyncio task
- children are registered before their fold starts reading input
- a child is deregistered exactly once, when its fold ends
- broadcasts go to every live child; closed channels are skipped

The live-children map is the only shared mutable state and is guarded by an
asyncio.Lock. The ``cancelled`` event is handed to every event source the
children poll, so a shutdown stops them at the next poll boundary.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any

from .channel import CommandChannel
from .errors import ChannelClosed, InvalidState
from .fold import Effects, FoldOutcome, Transition, run_fold
from .protocol.commands import Command
from .protocol.events import EntityKind, RemoteEvent
from .sessions import data, media

logger = logging.getLogger(__name__)

TRANSITIONS: dict[EntityKind, Transition[Any]] = {
    EntityKind.DATA: data.transition,
    EntityKind.MEDIA: media.transition,
}

_KIND_NAMES = {
    EntityKind.PEER: "peer",
    EntityKind.DATA: "data connection",
    EntityKind.MEDIA: "media connection",
}


@dataclass(frozen=True)
class SessionHandle:
    """Identity of a live child session."""

    kind: EntityKind
    entity_id: str

    def __str__(self) -> str:
        return f"{_KIND_NAMES[self.kind]} {self.entity_id}"


@dataclass
class ChildSession:
    handle: SessionHandle
    channel: CommandChannel
    task: asyncio.Task[None] | None = None


class SessionSupervisor:
    """Registry and lifecycle owner of connection sessions.

    Usage:
        supervisor = SessionSupervisor(effects)
        handle = await supervisor.spawn(EntityKind.DATA, state, source)
        await supervisor.broadcast(Command.status())
        drained = await supervisor.wait_drained(timeout=5.0)
    """

    def __init__(self, effects: Effects | None = None):
        self._effects = effects
        self._children: dict[SessionHandle, ChildSession] = {}
        self._lock = asyncio.Lock()
        self._drained = asyncio.Event()
        self._drained.set()
        self.cancelled = asyncio.Event()
        self.outcomes: list[tuple[SessionHandle, FoldOutcome[Any]]] = []

    @property
    def live_handles(self) -> list[SessionHandle]:
        return list(self._children)

    @property
    def live_count(self) -> int:
        return len(self._children)

    def is_live(self, handle: SessionHandle) -> bool:
        return handle in self._children

    async def spawn(
        self,
        kind: EntityKind,
        initial_state: Any,
        event_source: AsyncIterable[RemoteEvent],
        *,
        effects: Effects | None = None,
    ) -> SessionHandle:
        """Register a child session and start its fold.

        Args:
            kind: DATA or MEDIA
            initial_state: State carrying the child's connection_id
            event_source: The child's remote event feed
            effects: Overrides the supervisor's effects for this child

        Returns:
            Handle of the registered child

        Raises:
            InvalidState: If the kind can't be spawned, the handle is already
                live, or the supervisor is shutting down
        """
        effects = effects or self._effects
        transition = TRANSITIONS.get(kind)
        if transition is None:
            raise InvalidState(f"{kind.value} sessions are not spawned by the supervisor")
        if effects is None:
            raise InvalidState("supervisor has no effects to run children with")

        handle = SessionHandle(kind, str(initial_state.connection_id))
        async with self._lock:
            if self.cancelled.is_set():
                raise InvalidState(f"cannot spawn {handle}: shutting down")
            if handle in self._children:
                raise InvalidState(f"{handle} is already live")
            child = ChildSession(handle, CommandChannel(f"{handle} commands"))
            self._children[handle] = child
            self._drained.clear()
            child.task = asyncio.create_task(
                self._run_child(child, initial_state, transition, event_source, effects),
                name=str(handle),
            )

        logger.info(f"Spawned {handle}")
        return handle

    async def _run_child(
        self,
        child: ChildSession,
        state: Any,
        transition: Transition[Any],
        event_source: AsyncIterable[RemoteEvent],
        effects: Effects,
    ) -> None:
        handle = child.handle
        try:
            outcome = await run_fold(
                state, transition, event_source, child.channel, effects, label=str(handle)
            )
        except asyncio.CancelledError:
            logger.info(f"{handle} ended: cancelled")
            raise
        except Exception:
            logger.exception(f"{handle} ended: crashed")
        else:
            self.outcomes.append((handle, outcome))
            if outcome.failed:
                logger.error(f"{handle} ended: {outcome.reason}")
            else:
                logger.info(f"{handle} ended: {outcome.reason}")
        finally:
            await self.deregister(handle)

    async def deregister(self, handle: SessionHandle) -> bool:
        """Remove a child. Returns False if it was already gone."""
        async with self._lock:
            child = self._children.pop(handle, None)
            if child is None:
                return False
            child.channel.close()
            if not self._children:
                self._drained.set()
        logger.debug(f"Deregistered {handle}")
        return True

    async def broadcast(self, command: Command) -> int:
        """Send a command to every live child.

        Returns:
            Number of children the command was delivered to
        """
        async with self._lock:
            children = list(self._children.values())

        delivered = 0
        for child in children:
            try:
                child.channel.send(command)
                delivered += 1
            except ChannelClosed:
                logger.debug(f"Skipped {child.handle}: channel closed")
        return delivered

    async def wait_drained(self, timeout: float | None = None) -> bool:
        """Wait until no child is live. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._drained.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def shutdown(self, timeout: float = 1.0) -> int:
        """Stop every child.

        Sets the cancellation signal and closes all channels, which ends each
        fold at its next input. Children still running after `timeout` are
        cancelled.

        Returns:
            Number of children that had to be cancelled
        """
        self.cancelled.set()
        async with self._lock:
            children = list(self._children.values())
        for child in children:
            child.channel.close()

        if await self.wait_drained(timeout):
            return 0

        async with self._lock:
            stragglers = [c.task for c in self._children.values() if c.task is not None]
        for task in stragglers:
            task.cancel()
        for task in stragglers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.warning(f"Cancelled {len(stragglers)} session(s) that did not stop in time")
        return len(stragglers)
