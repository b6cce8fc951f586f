"""WebRTC gateway runtime CLI.

Creates a peer on the gateway and drives it from the terminal.

Usage:
    webrtc-gateway-runtime --config gateway.yaml          # Run interactively
    webrtc-gateway-runtime --config gateway.yaml --log-level DEBUG
    webrtc-gateway-runtime --config gateway.yaml config   # Show configuration
    webrtc-gateway-runtime config --json                  # Config from env only

The API key is read from GATEWAY_API_KEY (or API_KEY) unless the config file
sets peer.api_key.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from .config import load_config
from .errors import ConfigurationError
from .runtime import start
from .terminal import read_commands

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to the YAML configuration file",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging verbosity (logs go to stderr)",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    """WebRTC gateway runtime - session control for a WebRTC gateway.

    Without a subcommand, creates the configured peer and reads operator
    commands from stdin until `exit` or end of input.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    # If a subcommand is invoked, let it handle everything
    if ctx.invoked_subcommand is not None:
        return

    _run(config_path)


def _run(config_path: str | None) -> None:
    """Run the runtime until the peer session ends."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Starting peer {config.peer.peer_id} on gateway {config.gateway.url}", err=True)

    commands = read_commands(echo=lambda text: click.echo(text, err=True))
    try:
        status = asyncio.run(start(config, commands, report=click.echo))
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)
        sys.exit(130)

    if not status.ok:
        click.echo(f"Peer {status.peer_id} stopped: {status.reason}", err=True)
        sys.exit(1)

    click.echo(f"Peer {status.peer_id} stopped: {status.reason}", err=True)
    if not status.drained:
        click.echo(f"  {status.cancelled_sessions} connection(s) had to be cancelled", err=True)


@main.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show_config(ctx: click.Context, output_json: bool) -> None:
    """Show the resolved configuration.

    Examples:

        webrtc-gateway-runtime --config gateway.yaml config
        webrtc-gateway-runtime --config gateway.yaml config --json
    """
    try:
        config = load_config(ctx.obj.get("config_path"), require_api_key=False)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    data = config.to_display()
    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo("WebRTC Gateway Runtime Configuration")
    click.echo("-" * 40)
    click.echo(f"Gateway:            {data['gateway']['url']}")
    click.echo(f"Peer id:            {data['peer']['peer_id']}")
    click.echo(f"Domain:             {data['peer']['domain']}")
    click.echo(f"TURN:               {'yes' if data['peer']['turn'] else 'no'}")
    click.echo(f"API key:            {'set' if data['peer'].get('api_key') else 'not set'}")
    click.echo(f"Data redirects:     {len(data['data']['redirects'])}")
    click.echo(f"Media configs:      {len(data['media'])}")
    click.echo(f"Shutdown grace:     {data['runtime']['shutdown_grace']}s")


if __name__ == "__main__":
    main()
