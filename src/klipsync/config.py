#!/usr/bin/env python3
"""Runtime configuration.

Defaults come from the constants modules; main builds a SyncConfig from
the command line options.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from klipsync.client_constants import (
    BACKGROUND_HEARTBEAT_FACTOR,
    HEARTBEAT_INTERVAL,
    JOIN_ATTEMPTS,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY,
    RECONNECT_THROTTLE,
)
from klipsync.session_params import UserInfo


@dataclass
class SupervisorConfig:
    """Connection supervision tunables, in seconds where applicable."""

    heartbeat_interval: float = HEARTBEAT_INTERVAL
    background_heartbeat_factor: float = BACKGROUND_HEARTBEAT_FACTOR
    reconnect_throttle: float = RECONNECT_THROTTLE
    reconnect_base_delay: float = RECONNECT_BASE_DELAY
    reconnect_max_delay: float = RECONNECT_MAX_DELAY
    reconnect_max_attempts: int = RECONNECT_MAX_ATTEMPTS
    join_attempts: int = JOIN_ATTEMPTS


@dataclass
class ViewConfig:
    """Device view behaviour.

    Attributes:
        always_on: Activate sync as soon as the device is registered
            instead of waiting for an explicit start_sync.
        require_approval: Ask before installing incoming clips.
    """

    always_on: bool = False
    require_approval: bool = True


@dataclass
class SyncConfig:
    """Everything a client needs to run."""

    socket_path: str
    user: UserInfo | None
    api_key: str | None
    auto_write: bool = False
    view: ViewConfig = field(default_factory=ViewConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
