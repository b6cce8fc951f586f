"""Operator terminal.

Reads commands from stdin, one per line, without blocking the event loop.
Lines that don't parse are answered with the usage text and skipped. End of
input is treated as ``exit`` so the peer is always deleted on the gateway.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Callable
from typing import TextIO

from .errors import GatewayError
from .protocol.commands import USAGE, Command, CommandType, parse_command

logger = logging.getLogger(__name__)


async def connect_stdin(stdin: TextIO | None = None) -> asyncio.StreamReader:
    """Wrap stdin in an asyncio StreamReader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, stdin or sys.stdin)
    return reader


async def read_commands(
    reader: asyncio.StreamReader | None = None,
    echo: Callable[[str], None] | None = None,
) -> AsyncIterator[Command]:
    """Yield operator commands until ``exit`` or end of input.

    Args:
        reader: Line source (default: stdin)
        echo: Where usage and parse errors go (default: stderr)
    """
    echo = echo or (lambda text: print(text, file=sys.stderr))
    reader = reader or await connect_stdin()
    echo(USAGE)

    while True:
        # Over-long lines (ValueError) and bad bytes (UnicodeDecodeError) are
        # skipped so the operator can still type exit.
        try:
            line = await reader.readline()
            text = line.decode("utf-8").strip()
        except ValueError as e:
            logger.warning(f"Error reading stdin: {e}")
            echo(f"unreadable input: {e}")
            continue

        if not line:
            logger.info("stdin closed, exiting")
            yield Command.exit()
            return
        if not text:
            continue
        try:
            command = parse_command(text)
        except (ValueError, GatewayError) as e:
            echo(str(e))
            continue

        yield command
        if command.type == CommandType.EXIT:
            return
