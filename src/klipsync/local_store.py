#!/usr/bin/env python3
"""Per-installation local state.

Stores the stable device id and the last authenticated user's
credentials in the application directory. The device id is generated
once and reused until the file is removed, so a device is recognized
across restarts.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import random
import socket
import string
import time
from pathlib import Path

import click

from klipsync.session_params import UserInfo

logger = logging.getLogger(__name__)

APP_NAME: str = "klipsync"
DEVICE_ID_FILE: str = "device-id"
CREDENTIALS_FILE: str = "credentials.json"

_BASE36 = string.digits + string.ascii_lowercase


def default_directory() -> Path:
    """Return the platform application directory for klipsync."""
    return Path(click.get_app_dir(APP_NAME))


def generate_device_id() -> str:
    """Return a new device id: device_<epoch ms>_<6 base36 chars>."""
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"device_{int(time.time() * 1000)}_{suffix}"


def device_name() -> str:
    """Return a human readable name for this machine."""
    return f"{platform.system() or 'Unknown'} - {socket.gethostname()}"


class LocalStore:
    """Device id and credential cache rooted at a directory.

    Args:
        directory: Storage directory, created on first write. Defaults to
            the platform application directory.
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = Path(directory) if directory is not None else default_directory()
        self._device_id: str | None = None

    def device_id(self) -> str:
        """Load the device id, generating and saving it on first use."""
        if self._device_id is not None:
            return self._device_id
        path = self.directory / DEVICE_ID_FILE
        try:
            stored = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            stored = ""
        if not stored:
            stored = generate_device_id()
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(stored + "\n", encoding="utf-8")
            logger.info("Generated device id %s", stored)
        self._device_id = stored
        return stored

    def save_credentials(self, user: UserInfo, api_key: str) -> None:
        """Cache the authenticated user and API key with owner-only permissions."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / CREDENTIALS_FILE
        data = {"user": user.to_dict(), "api_key": api_key}
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def load_credentials(self) -> tuple[UserInfo, str] | None:
        """Return the cached (user, api_key), or None if absent or unreadable."""
        path = self.directory / CREDENTIALS_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return UserInfo.from_dict(data["user"]), str(data["api_key"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable credentials cache %s: %s", path, e)
            return None

    def clear_credentials(self) -> None:
        try:
            (self.directory / CREDENTIALS_FILE).unlink()
        except FileNotFoundError:
            pass
