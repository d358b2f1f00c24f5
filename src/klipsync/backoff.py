#!/usr/bin/env python3
"""Reconnection backoff state.

A plain state object rather than a chain of timers: it counts attempts,
computes the delay before the next one and records when that attempt is
due. The supervisor drives it with a single sleep per attempt, which
keeps the schedule testable without waiting on a real clock.
"""

from __future__ import annotations

from dataclasses import dataclass

from klipsync.client_constants import (
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY,
)


@dataclass
class ReconnectBackoff:
    """Linear-growth backoff with a cap on delay and attempts.

    The delay before attempt k (counting from 1) is
    min(k * base_delay, max_delay).

    Attributes:
        base_delay: Delay unit in seconds.
        max_delay: Upper bound on any delay in seconds.
        max_attempts: Attempts allowed before the backoff is exhausted.
        attempt: Attempts started since the last reset.
        scheduled_wake: Clock time the pending attempt is due, or None.
    """

    base_delay: float = RECONNECT_BASE_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    max_attempts: int = RECONNECT_MAX_ATTEMPTS
    attempt: int = 0
    scheduled_wake: float | None = None

    def delay(self, attempt: int) -> float:
        return min(attempt * self.base_delay, self.max_delay)

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def next_delay(self, now: float) -> float:
        """Start the next attempt and return how long to wait before it.

        Raises:
            RuntimeError: If all attempts have been used.
        """
        if self.exhausted:
            raise RuntimeError("Reconnection attempts exhausted")
        self.attempt += 1
        wait = self.delay(self.attempt)
        self.scheduled_wake = now + wait
        return wait

    def reset(self) -> None:
        self.attempt = 0
        self.scheduled_wake = None
