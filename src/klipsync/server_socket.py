#!/usr/bin/env python3
"""Socket file housekeeping for the klipsync hub.

A hub that crashed leaves its socket file behind. Before binding, the hub
probes the path: a refused connection means the file is stale and can be
removed, an accepted one means another hub still owns it.
"""

from __future__ import annotations

import os
import socket
import sys
from contextlib import suppress


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def check_socket_state(socket_path: str) -> None:
    """Clear a stale hub socket, or exit if a live hub is listening on it.

    Raises:
        SystemExit: With status 1 when the path belongs to a running hub
            or cannot be probed.
    """
    if not os.path.exists(socket_path):
        return

    probe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        probe.connect(socket_path)
    except ConnectionRefusedError:
        os.unlink(socket_path)
        return
    except OSError as e:
        _fail(f"Cannot access socket {socket_path}: {e}")
    else:
        _fail(f"Socket already in use by active hub: {socket_path}")
    finally:
        probe.close()


def print_startup_message(socket_path: str) -> None:
    """Tell the operator where the hub listens and how devices reach it."""
    print(f"Hub listening on {socket_path}", file=sys.stderr)
    print(
        f"Example SSH forward: ssh -R REMOTE_SOCKET_PATH:{socket_path} user@host",
        file=sys.stderr,
    )


def cleanup_socket(socket_path: str) -> None:
    """Remove the hub socket file if it is still there."""
    with suppress(FileNotFoundError):
        os.unlink(socket_path)
