"""Runtime bootstrap and shutdown.

Lifecycle:
1. Create the peer on the gateway
2. Run the Peer session until CLOSE, exit or a fatal error
3. Wait for connection sessions to drain, bounded by runtime.shutdown_grace
4. Cancel whatever is still running

Commands reach the Peer session through ``GatewayRuntime.submit``. Only one
Peer session may be live per process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass
from functools import partial
from typing import ClassVar

from .channel import CommandChannel
from .config import RuntimeConfig
from .errors import ChannelClosed, GatewayError, InvalidState
from .fold import run_fold
from .gateway.client import GatewayClient
from .identifiers import PeerInfo
from .longpoll import LongPollEventSource
from .protocol.commands import Command, parse_command
from .sessions import peer
from .sessions.effects import GatewayEffects, Reporter
from .supervisor import SessionSupervisor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalStatus:
    """How a runtime run ended."""

    peer_id: str
    reason: str
    error: GatewayError | None = None
    drained: bool = True
    cancelled_sessions: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class GatewayRuntime:
    """Owns the Peer session, its supervisor and the gateway client.

    Usage:
        runtime = GatewayRuntime(config)
        task = asyncio.create_task(runtime.run())
        await runtime.wait_ready()
        await runtime.submit(Command.connect_to("peer-b"))
        await runtime.submit(Command.exit())
        status = await task
    """

    _live_peer: ClassVar[str | None] = None

    def __init__(
        self,
        config: RuntimeConfig,
        client: GatewayClient | None = None,
        *,
        report: Reporter | None = None,
    ):
        self.config = config
        self._client = client
        self._report = report
        self.supervisor = SessionSupervisor()
        self.peer_info: PeerInfo | None = None
        self.state: peer.PeerState | None = None
        self._commands: CommandChannel | None = None
        self._ready = asyncio.Event()

    @property
    def is_live(self) -> bool:
        return self._commands is not None and not self._commands.closed

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the Peer session accepts commands, or the run ended.

        Returns:
            True if the Peer session is live
        """
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._ready.wait(), timeout)
        return self.is_live

    async def submit(self, command: Command) -> None:
        """Inject a command into the Peer session.

        Raises:
            InvalidState: If no Peer session is live
        """
        if self._commands is None:
            raise InvalidState("no live peer session")
        try:
            self._commands.send(command)
        except ChannelClosed as e:
            raise InvalidState("peer session has ended") from e

    async def submit_line(self, line: str) -> Command:
        """Parse an operator line and submit it."""
        command = parse_command(line)
        await self.submit(command)
        return command

    async def feed(self, commands: AsyncIterable[Command]) -> None:
        """Forward commands to the Peer session until either side ends.

        If the command stream fails, the peer is told to exit so it is still
        deleted on the gateway.
        """
        if not await self.wait_ready():
            return
        try:
            async for command in commands:
                try:
                    await self.submit(command)
                except InvalidState:
                    logger.debug(f"Dropped {command.type.value}: peer session has ended")
                    return
        except Exception as e:
            logger.error(f"Command input failed, exiting: {e}")
            with contextlib.suppress(InvalidState):
                await self.submit(Command.exit())

    async def run(self) -> FinalStatus:
        """Create the peer and run until the session tree has shut down."""
        peer_id = self.config.peer.peer_id
        if GatewayRuntime._live_peer is not None:
            raise InvalidState(f"peer {GatewayRuntime._live_peer} is already live in this process")
        GatewayRuntime._live_peer = peer_id

        client = self._client or GatewayClient(
            self.config.gateway.url, timeout=self.config.gateway.timeout
        )
        try:
            return await self._run(client)
        finally:
            GatewayRuntime._live_peer = None
            self._ready.set()
            if self._client is None:
                await client.aclose()

    async def _run(self, client: GatewayClient) -> FinalStatus:
        settings = self.config.peer
        supervisor = self.supervisor
        effects = GatewayEffects(client, supervisor, report=self._report)

        try:
            peer_info = await client.create_peer(
                self.config.api_key or "", settings.domain, settings.peer_id, settings.turn
            )
        except GatewayError as e:
            logger.error(f"Could not create peer {settings.peer_id}: {e}")
            return FinalStatus(settings.peer_id, "peer creation failed", error=e)

        self.peer_info = peer_info
        label = f"peer {peer_info.peer_id}"
        commands = CommandChannel(f"{label} commands")
        events = LongPollEventSource(
            partial(client.peer_event, peer_info), cancelled=supervisor.cancelled, label=label
        )
        self._commands = commands
        self._ready.set()

        try:
            outcome = await run_fold(
                peer.PeerState.initial(peer_info, self.config),
                peer.transition,
                events,
                commands,
                effects,
                label=label,
            )
        except asyncio.CancelledError:
            logger.warning(f"{label} cancelled")
            commands.close()
            await self._teardown(client, peer_info)
            await supervisor.shutdown()
            raise
        finally:
            commands.close()

        self.state = outcome.state
        if outcome.failed:
            logger.error(f"{label} ended: {outcome.reason}")
            if outcome.state.peer_info is not None:
                await self._teardown(client, outcome.state.peer_info)
        else:
            logger.info(f"{label} ended: {outcome.reason}")

        grace = self.config.runtime.shutdown_grace
        drained = await supervisor.wait_drained(grace)
        cancelled = 0
        if drained:
            supervisor.cancelled.set()
        else:
            logger.warning(
                f"{supervisor.live_count} session(s) still live after {grace}s, stopping them"
            )
            cancelled = await supervisor.shutdown()

        return FinalStatus(
            str(peer_info.peer_id),
            outcome.reason,
            error=outcome.error,
            drained=drained,
            cancelled_sessions=cancelled,
        )

    async def _teardown(self, client: GatewayClient, peer_info: PeerInfo) -> None:
        """Best-effort cleanup after the Peer session did not exit normally."""
        await self.supervisor.broadcast(Command.disconnect())
        try:
            await client.delete_peer(peer_info)
        except GatewayError as e:
            logger.warning(f"Could not delete peer {peer_info.peer_id}: {e}")


async def start(
    config: RuntimeConfig,
    commands: AsyncIterable[Command] | None = None,
    *,
    client: GatewayClient | None = None,
    report: Reporter | None = None,
) -> FinalStatus:
    """Run the runtime, feeding it commands from `commands` if given.

    Returns once the Peer session has ended and its connections have drained
    or were stopped.
    """
    runtime = GatewayRuntime(config, client, report=report)
    if commands is None:
        return await runtime.run()

    feeder = asyncio.create_task(runtime.feed(commands))
    try:
        return await runtime.run()
    finally:
        feeder.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await feeder
