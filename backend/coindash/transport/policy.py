"""Exponential reconnection backoff."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ReconnectionPolicy:
    """delay(attempt) = base_ms * 2**attempt, for attempt < max_attempts.

    After max_attempts consecutive failures the connection gives up and
    reports a terminal error instead of scheduling another attempt.
    """

    base_ms: int = 1000
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.base_ms < 0:
            raise ValueError(f"base_ms must be non-negative, got {self.base_ms}")
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be non-negative, got {self.max_attempts}")

    def delay(self, attempt: int) -> int:
        """Milliseconds to wait before reconnection attempt number `attempt` (0-based)."""
        if attempt < 0:
            raise ValueError(f"attempt must be non-negative, got {attempt}")
        return self.base_ms * 2**attempt

    def allows(self, attempt: int) -> bool:
        """Whether another attempt may be scheduled after `attempt` failures."""
        return attempt < self.max_attempts
