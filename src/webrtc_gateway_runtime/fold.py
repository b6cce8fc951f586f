"""Session fold engine.

A session is a fold over one merged input stream:

    remote events ─┐
                   ├─ merge ─> transition(state, input) -> Step ─> effects
    commands ──────┘

The merge is first-ready-wins with no priority between the two sources and
never reorders items of the same source. Transitions are pure; the engine
performs the actions of each Step, one at a time and awaited, before it pulls
the next input. The fold ends on a terminal Step, when either source ends, or
when a remote operation fails.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from .errors import GatewayError
from .protocol.commands import Command
from .protocol.events import RemoteEvent
from .sessions.actions import Action

logger = logging.getLogger(__name__)

S = TypeVar("S")

Inbound = RemoteEvent | Command

_END = object()


@dataclass(frozen=True)
class Step(Generic[S]):
    """Result of applying one input to a session state.

    Attributes:
        state: The new state
        actions: Side effects to perform, in order
        terminal: The fold ends after the actions are performed
        rejection: The input was refused; logged, never fatal
        reason: Why the session ends, when terminal
    """

    state: S
    actions: tuple[Action, ...] = ()
    terminal: bool = False
    rejection: GatewayError | None = None
    reason: str | None = None


Transition = Callable[[S, Inbound], Step[S]]


class Effects(Protocol):
    """Interprets actions against the outside world."""

    async def perform(self, action: Action) -> None: ...


@dataclass(frozen=True)
class FoldOutcome(Generic[S]):
    """How a fold ended."""

    state: S
    reason: str
    error: GatewayError | None = None
    inputs: int = 0

    @property
    def failed(self) -> bool:
        return self.error is not None


async def _next(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _END


async def merge(
    events: AsyncIterable[RemoteEvent], commands: AsyncIterable[Command]
) -> AsyncIterator[Inbound]:
    """Interleave two sources, yielding whichever item is ready first.

    At most one read is outstanding per source, so each source's own order is
    kept. Ends as soon as either source ends; an error from either source is
    raised to the consumer. Outstanding reads are cancelled on exit.
    """
    sources: dict[str, AsyncIterator[Any]] = {
        "commands": aiter(commands),
        "events": aiter(events),
    }
    pending: dict[asyncio.Task[Any], str] = {
        asyncio.create_task(_next(iterator)): name for name, iterator in sources.items()
    }
    try:
        while True:
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=lambda t: pending[t]):
                name = pending.pop(task)
                item = task.result()
                if item is _END:
                    logger.debug(f"merge: {name} ended")
                    return
                yield item
                pending[asyncio.create_task(_next(sources[name]))] = name
    finally:
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task


async def run_fold(
    state: S,
    transition: Transition[S],
    events: AsyncIterable[RemoteEvent],
    commands: AsyncIterable[Command],
    effects: Effects,
    *,
    label: str = "session",
) -> FoldOutcome[S]:
    """Run a session until it terminates.

    Args:
        state: Initial state
        transition: Pure function applied to every merged input
        events: Remote event source
        commands: Local command channel
        effects: Performs the actions transitions request
        label: Session name used in log lines

    Returns:
        Final state, termination reason and the error that aborted it, if any
    """
    inputs = 0
    stream = merge(events, commands)
    try:
        async for item in stream:
            inputs += 1
            step = transition(state, item)
            state = step.state
            if step.rejection is not None:
                logger.warning(f"{label}: rejected {describe(item)}: {step.rejection}")
            for action in step.actions:
                await effects.perform(action)
            if step.terminal:
                return FoldOutcome(state, step.reason or "terminated", inputs=inputs)
        return FoldOutcome(state, "input ended", inputs=inputs)
    except GatewayError as e:
        return FoldOutcome(state, f"aborted: {e}", error=e, inputs=inputs)
    finally:
        await stream.aclose()


def describe(item: Inbound) -> str:
    """Short human form of a fold input, for logs."""
    if isinstance(item, Command):
        return f"command {item.type.value}" + (f" {item.target}" if item.target else "")
    return f"event {item.event}"


def fold_inputs(state: S, transition: Transition[S], inputs: Sequence[Inbound]) -> list[Step[S]]:
    """Apply inputs synchronously without performing actions.

    Used to replay a known input order against a transition function.
    """
    steps = []
    for item in inputs:
        step = transition(state, item)
        steps.append(step)
        state = step.state
        if step.terminal:
            break
    return steps
