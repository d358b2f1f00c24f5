#!/usr/bin/env python3
"""Constants for the replicated clip store and device registry."""

# Maximum number of clips kept in the shared history.
MAX_CLIPS: int = 100

# Number of most recent clips checked for identical text before adding.
DEDUP_WINDOW: int = 5

# Number of clips written to a persisted snapshot.
SNAPSHOT_CLIPS: int = 20

# Snapshot layout version. Snapshots with any other version are discarded.
SCHEMA_VERSION: int = 1

# Seconds between restoring a snapshot and announcing the restored clips,
# so views constructed during the same join have subscribed.
RESTORE_GRACE_DELAY: float = 0.1

# Provenance defaults for requests that omit them.
ANONYMOUS_USER: str = "anonymous"
UNKNOWN_DEVICE: str = "unknown"
UNKNOWN_DEVICE_NAME: str = "Unknown Device"
