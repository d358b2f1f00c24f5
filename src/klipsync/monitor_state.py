#!/usr/bin/env python3
"""Monitor state machine.

The clipboard read interval follows how much attention the user is
paying to this device. Presence records the raw inputs (visibility,
focus, recent copy signals); resolve_state derives the MonitorState from
them, so the state is never set directly and cannot drift from its
inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from klipsync.monitor_constants import (
    AGGRESSIVE_INTERVAL,
    FOCUSED_INTERVAL,
    HIDDEN_INTERVAL,
    VISIBLE_INTERVAL,
)


class MonitorState(str, Enum):
    IDLE = "idle"
    POLLING_HIDDEN = "polling-hidden"
    POLLING_VISIBLE = "polling-visible"
    POLLING_FOCUSED = "polling-focused"
    POLLING_AGGRESSIVE = "polling-aggressive"


class MonitorMode(str, Enum):
    """How local clipboard changes are captured.

    POLLING reads the clipboard on a timer. PASTE_EVENTS only accepts
    text delivered through paste events, used after repeated read
    failures. MANUAL captures only on an explicit user action, used when
    reads are unreliable without a user gesture.
    """

    POLLING = "polling"
    PASTE_EVENTS = "paste-events"
    MANUAL = "manual"


_ATTENTION: dict[MonitorState, int] = {
    MonitorState.IDLE: 0,
    MonitorState.POLLING_HIDDEN: 1,
    MonitorState.POLLING_VISIBLE: 2,
    MonitorState.POLLING_FOCUSED: 3,
    MonitorState.POLLING_AGGRESSIVE: 4,
}

_INTERVALS: dict[MonitorState, float] = {
    MonitorState.POLLING_HIDDEN: HIDDEN_INTERVAL,
    MonitorState.POLLING_VISIBLE: VISIBLE_INTERVAL,
    MonitorState.POLLING_FOCUSED: FOCUSED_INTERVAL,
    MonitorState.POLLING_AGGRESSIVE: AGGRESSIVE_INTERVAL,
}


@dataclass
class Presence:
    """User presence inputs driving the monitor state.

    Attributes:
        visible: The app is visible (not minimized, screen not locked).
        focused: The app has input focus.
        aggressive_until: Clock time at which aggressive polling ends, or
            None when not polling aggressively.
        last_interaction: Clock time of the last user interaction, or None.
    """

    visible: bool = True
    focused: bool = False
    aggressive_until: float | None = None
    last_interaction: float | None = None

    def aggressive(self, now: float) -> bool:
        return self.aggressive_until is not None and now < self.aggressive_until

    def interacted_within(self, window: float, now: float) -> bool:
        return self.last_interaction is not None and now - self.last_interaction <= window


def resolve_state(presence: Presence, monitoring: bool, now: float) -> MonitorState:
    """Derive the monitor state from presence at clock time now."""
    if not monitoring:
        return MonitorState.IDLE
    if presence.aggressive(now):
        return MonitorState.POLLING_AGGRESSIVE
    if not presence.visible:
        return MonitorState.POLLING_HIDDEN
    if presence.focused:
        return MonitorState.POLLING_FOCUSED
    return MonitorState.POLLING_VISIBLE


def is_more_attentive(new: MonitorState, old: MonitorState) -> bool:
    return _ATTENTION[new] > _ATTENTION[old]


def interval_for(state: MonitorState) -> float | None:
    """Return the polling interval in seconds, or None when idle."""
    return _INTERVALS.get(state)
