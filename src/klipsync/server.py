#!/usr/bin/env python3
"""Hub mode implementation for klipsync.

The hub listens on a Unix domain socket and hosts the replicated model of
every session its devices join. Devices connect (typically through an
SSH-forwarded socket), join the session derived from their user, publish
requests and receive the model's notifications in delivery order.

On startup the hub checks if the socket file exists and whether it
belongs to an active hub (refusing to start) or is stale (unlinking and
proceeding).

Usage:
    klipsync --hub --socket /path/to/socket
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import asyncio

    from klipsync.transport import LocalHub


async def run_hub(
    socket_path: str,
    hub: LocalHub | None = None,
    shutdown_requested: asyncio.Event | None = None,
) -> None:
    """Run the hub until SIGINT/SIGTERM or shutdown_requested is set.

    Args:
        socket_path: Path to the Unix domain socket to listen on.
        hub: Session hub to serve; a new LocalHub by default.
        shutdown_requested: Event that stops the hub when set. Signal
            handlers are installed only when it is not supplied.
    """
    import asyncio
    import logging
    import signal

    from klipsync.server_handler import handle_client
    from klipsync.server_socket import check_socket_state, print_startup_message
    from klipsync.transport import LocalHub

    logger = logging.getLogger(__name__)

    if hub is None:
        hub = LocalHub()

    if shutdown_requested is None:
        shutdown_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, shutdown_requested.set)
        loop.add_signal_handler(signal.SIGTERM, shutdown_requested.set)

    check_socket_state(socket_path)

    server = await asyncio.start_unix_server(
        lambda r, w: handle_client(hub, r, w),
        path=socket_path,
    )
    print_startup_message(socket_path)

    async with server:
        await shutdown_requested.wait()
        logger.debug("Hub shutting down")
        server.close()
