#!/usr/bin/env python3
"""Bounded, newest-first clip history with a duplicate window.

The store rejects text that is empty after trimming or that matches one
of the most recent DEDUP_WINDOW clips. Older identical text may be added
again once it has scrolled out of the window. When the store grows past
max_clips the oldest clips are dropped silently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from klipsync.clip import Clip
from klipsync.model_constants import DEDUP_WINDOW, MAX_CLIPS

logger = logging.getLogger(__name__)


class AddOutcome(Enum):
    """Result kind of ClipStore.add."""

    ADDED = "added"
    EMPTY = "empty"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"


@dataclass(frozen=True)
class AddResult:
    """Outcome of an add, with the stored clip and any evicted clips."""

    outcome: AddOutcome
    clip: Clip | None = None
    evicted: tuple[Clip, ...] = ()

    @property
    def added(self) -> bool:
        return self.outcome is AddOutcome.ADDED


@dataclass
class ClipStore:
    """Ordered clip history, newest first.

    Attributes:
        max_clips: Capacity; oldest clips are evicted beyond it.
        dedup_window: How many of the newest clips are checked for
            identical text.
        clips: The stored clips, index 0 is the newest.
    """

    max_clips: int = MAX_CLIPS
    dedup_window: int = DEDUP_WINDOW
    clips: list[Clip] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.clips)

    def is_duplicate(self, text: str) -> bool:
        """Check text against the duplicate window.

        Args:
            text: Already trimmed text.

        Returns:
            True if one of the newest dedup_window clips has this text.
        """
        return any(c.text == text for c in self.clips[: self.dedup_window])

    def add(self, clip: Clip) -> AddResult:
        """Prepend a clip unless it is empty or a recent duplicate."""
        if not clip.text.strip():
            return AddResult(AddOutcome.EMPTY)
        if self.is_duplicate(clip.text):
            logger.debug("Duplicate clip suppressed: %.50r", clip.text)
            return AddResult(AddOutcome.DUPLICATE_SUPPRESSED)
        self.clips.insert(0, clip)
        evicted = tuple(self.clips[self.max_clips:])
        del self.clips[self.max_clips:]
        return AddResult(AddOutcome.ADDED, clip, evicted)

    def remove(self, clip_id: str) -> Clip | None:
        """Remove a clip by id.

        Returns:
            The removed clip, or None if no clip has that id.
        """
        for index, clip in enumerate(self.clips):
            if clip.id == clip_id:
                return self.clips.pop(index)
        return None

    def clear(self) -> int:
        """Remove all clips and return how many there were."""
        count = len(self.clips)
        self.clips.clear()
        return count

    def get(self, clip_id: str) -> Clip | None:
        return next((c for c in self.clips if c.id == clip_id), None)

    def recent(self, count: int) -> list[Clip]:
        return list(self.clips[:count])

    def replace(self, clips: list[Clip]) -> None:
        """Replace the contents, keeping the capacity bound."""
        self.clips = list(clips[: self.max_clips])
