#!/usr/bin/env python3
"""Session join parameters derived from the authenticated user.

Every device of one user must land in the same session, so the session
name and password are derived deterministically from the user's email.
The API key comes from the account backend and is passed through.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

APP_ID: str = "io.klipsync.clipboard-sync"


@dataclass(frozen=True)
class UserInfo:
    """Authenticated user as supplied by the account backend."""

    id: str
    email: str
    name: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> UserInfo:
        return cls(id=str(data["id"]), email=str(data["email"]), name=str(data.get("name", "")))


@dataclass(frozen=True)
class SessionParams:
    """Parameters for joining a session."""

    name: str
    password: str
    api_key: str
    app_id: str = APP_ID

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> SessionParams:
        return cls(
            name=str(data["name"]),
            password=str(data["password"]),
            api_key=str(data.get("api_key", "")),
            app_id=str(data.get("app_id", APP_ID)),
        )


def session_name_for(email: str) -> str:
    """Return the session name shared by all devices of a user."""
    return "klipsync-" + re.sub(r"[^a-zA-Z0-9]", "-", email)


def session_password_for(email: str) -> str:
    """Return a deterministic session password for a user.

    Uses a 31-multiplier string hash wrapped to a signed 32-bit integer,
    so the value is stable across processes and platforms.
    """
    h = 0
    for char in email:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return f"klipsync-{abs(h)}-{len(email)}-clipboard"


def session_params_for(user: UserInfo, api_key: str) -> SessionParams:
    return SessionParams(
        name=session_name_for(user.email),
        password=session_password_for(user.email),
        api_key=api_key,
    )
