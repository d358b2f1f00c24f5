#!/usr/bin/env python3
"""Snapshot layout for persisting a session across transport restarts.

A snapshot keeps the newest SNAPSHOT_CLIPS clips and every device. It is
a plain dict so any transport can store it as JSON:

    {"clips": [...], "devices": [...], "last_activity": float,
     "schema_version": 1}
"""

from __future__ import annotations

import logging

from klipsync.clip import Clip
from klipsync.device_registry import Device
from klipsync.model_constants import SCHEMA_VERSION, SNAPSHOT_CLIPS

logger = logging.getLogger(__name__)


def build_snapshot(clips: list[Clip], devices: list[Device], last_activity: float) -> dict:
    """Build a snapshot dict from model state."""
    return {
        "clips": [c.to_dict() for c in clips[:SNAPSHOT_CLIPS]],
        "devices": [d.to_dict() for d in devices],
        "last_activity": last_activity,
        "schema_version": SCHEMA_VERSION,
    }


def parse_snapshot(data: dict) -> tuple[list[Clip], list[Device], float | None] | None:
    """Validate and decode a snapshot.

    Args:
        data: Snapshot dict as produced by build_snapshot.

    Returns:
        Tuple of (clips, devices, last_activity), or None if the snapshot
        has an unknown schema version or is malformed. Rejected snapshots
        are logged; the caller starts from an empty state.
    """
    if not isinstance(data, dict):
        logger.error("Failed to restore persisted data: not a mapping")
        return None
    version = data.get("schema_version")
    if version != SCHEMA_VERSION:
        logger.error("Discarding snapshot with schema version %r", version)
        return None
    try:
        clips = [Clip.from_dict(c) for c in data.get("clips") or []]
        devices = [Device.from_dict(d) for d in data.get("devices") or []]
        last_activity = data.get("last_activity")
        if last_activity is not None:
            last_activity = float(last_activity)
    except (KeyError, TypeError, ValueError) as e:
        logger.error("Failed to restore persisted data: %s", e)
        return None
    return clips, devices, last_activity
