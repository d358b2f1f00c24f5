#!/usr/bin/env python3
"""Clip record.

A clip is one immutable clipboard text entry together with where it came
from. Clips travel between processes as plain dicts (see to_dict and
from_dict) inside event payloads and snapshots.
"""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Clip:
    """One recorded clipboard entry.

    Attributes:
        id: Unique id, "<model time ms>-<random hex>", so sorting by id
            approximates creation order.
        text: Trimmed, non-empty clip text.
        created_at: Logical model time in milliseconds.
        user_id: Id of the user whose device captured the text.
        device_id: Stable id of the capturing device.
    """

    id: str
    text: str
    created_at: float
    user_id: str
    device_id: str

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Clip:
        """Build a Clip from a dict produced by to_dict.

        Raises:
            KeyError: If a field is missing.
        """
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            created_at=float(data["created_at"]),
            user_id=str(data["user_id"]),
            device_id=str(data["device_id"]),
        )


def make_clip_id(model_time: float, rng: random.Random) -> str:
    """Derive a clip id from logical time plus randomness.

    Args:
        model_time: Logical model time in milliseconds.
        rng: Session-seeded random source, so replays yield the same ids.

    Returns:
        The clip id string.
    """
    return f"{int(model_time):013d}-{rng.getrandbits(32):08x}"
