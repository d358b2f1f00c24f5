"""CLI handling for klipsync.

This module provides the command-line interface for klipsync, handling
argument parsing via click, logging configuration, and dispatching to hub
or client mode based on user-specified options.

Usage:
    klipsync --hub --socket PATH [--verbose]
    klipsync --client --socket PATH --user-id ID --email EMAIL --api-key KEY
             [--name NAME] [--always-on] [--auto-write] [--verbose]
"""

import click
import sys

from klipsync.main_options import ModeOption, MutuallyExclusiveOption
from klipsync.main_logging import configure_logging


@click.command()
@click.option(
    "--hub",
    is_flag=True,
    cls=MutuallyExclusiveOption,
    not_required_if=["client"],
    help="Run in hub mode",
)
@click.option(
    "--client",
    is_flag=True,
    cls=MutuallyExclusiveOption,
    not_required_if=["hub"],
    help="Run in client mode",
)
@click.option(
    "--socket",
    required=True,
    type=click.Path(),
    help="Unix domain socket path",
)
@click.option(
    "--user-id",
    cls=ModeOption,
    mode="client",
    help="Authenticated user id (client mode)",
)
@click.option(
    "--email",
    cls=ModeOption,
    mode="client",
    help="Authenticated user email (client mode)",
)
@click.option(
    "--name",
    cls=ModeOption,
    mode="client",
    default="",
    help="User display name (client mode)",
)
@click.option(
    "--api-key",
    cls=ModeOption,
    mode="client",
    help="API key used to join the session (client mode)",
)
@click.option(
    "--always-on",
    is_flag=True,
    cls=ModeOption,
    mode="client",
    help="Activate sync for this device as soon as it joins",
)
@click.option(
    "--auto-write",
    is_flag=True,
    cls=ModeOption,
    mode="client",
    help="Allow incoming clips to be written without a forced paste",
)
@click.option(
    "--require-approval/--no-require-approval",
    default=True,
    show_default=True,
    cls=ModeOption,
    mode="client",
    help="Ask before installing clips from other devices",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable DEBUG-level logging",
)
def main(
    hub: bool,
    client: bool,
    socket: str,
    user_id: str | None,
    email: str | None,
    name: str,
    api_key: str | None,
    always_on: bool,
    auto_write: bool,
    require_approval: bool,
    verbose: bool,
) -> None:
    """Share clipboard history between a user's devices through a hub."""
    if not hub and not client:
        raise click.UsageError("Either --hub or --client must be specified")

    configure_logging(verbose)

    if hub:
        _run_mode(hub, socket, None)
        return

    from klipsync.config import SyncConfig, ViewConfig
    from klipsync.session_params import UserInfo

    # Cached credentials are used when none are given.
    user = None
    if user_id and email:
        user = UserInfo(id=user_id, email=email, name=name)
    elif user_id or email:
        raise click.UsageError("--user-id and --email must be given together")
    config = SyncConfig(
        socket_path=socket,
        user=user,
        api_key=api_key,
        auto_write=auto_write,
        view=ViewConfig(always_on=always_on, require_approval=require_approval),
    )
    _run_mode(hub, socket, config)


def _run_mode(hub: bool, socket: str, config) -> None:
    """Run the appropriate mode (hub or client).

    Args:
        hub: True for hub mode, False for client mode.
        socket: Path to the Unix domain socket.
        config: SyncConfig for client mode, None for hub mode.
    """
    import asyncio
    from klipsync.client import run_client
    from klipsync.protocol import ProtocolError

    try:
        if hub:
            _run_hub_with_cleanup(socket)
        else:
            asyncio.run(run_client(config))
    except (ProtocolError, ConnectionError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _run_hub_with_cleanup(socket: str) -> None:
    """Run hub mode with socket cleanup on exit.

    Args:
        socket: Path to the Unix domain socket.
    """
    import asyncio
    from klipsync.server import run_hub
    from klipsync.server_socket import cleanup_socket

    try:
        asyncio.run(run_hub(socket))
    finally:
        cleanup_socket(socket)
