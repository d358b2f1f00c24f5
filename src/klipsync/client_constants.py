#!/usr/bin/env python3
"""Constants for session connection, heartbeat and reconnection.

These constants control how a device joins its session, how often it
proves the connection is alive, and how it backs off when the connection
is lost.
"""

# Initial join retry parameters (tenacity exponential backoff).
# Initial delay between join attempts in seconds.
INITIAL_WAIT: float = 1.0

# Maximum delay between join attempts in seconds.
MAX_WAIT: float = 60.0

# Multiplier for exponential backoff (delay = initial * multiplier^attempt).
WAIT_MULTIPLIER: float = 2.0

# Join attempts before the initial connection is given up.
JOIN_ATTEMPTS: int = 5

# Keep-alive period while connected, in seconds. Deliberately low-frequency.
HEARTBEAT_INTERVAL: float = 300.0

# Heartbeat period multiplier while the device is backgrounded.
BACKGROUND_HEARTBEAT_FACTOR: float = 4.0

# Seconds to wait for a pong before the heartbeat counts as failed.
HEARTBEAT_TIMEOUT: float = 10.0

# Failure signals closer than this to the last attempt are ignored.
RECONNECT_THROTTLE: float = 30.0

# Delay before reconnection attempt k is k * RECONNECT_BASE_DELAY seconds.
RECONNECT_BASE_DELAY: float = 2.0

# Upper bound on any single reconnection delay in seconds.
RECONNECT_MAX_DELAY: float = 60.0

# Reconnection attempts before the device is permanently disconnected.
RECONNECT_MAX_ATTEMPTS: int = 5
