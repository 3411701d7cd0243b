"""Time helpers: UTC normalisation and query deadlines."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

from event_reco.core.errors import QueryTimeout


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_utc(when: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


class Deadline:
    """
    Caller-supplied time budget for a read query.

    Uses the monotonic clock so wall-clock adjustments cannot extend or cut
    a query short.
    """

    def __init__(self, timeout_s: float, *, operation: str = "query"):
        self.timeout_s = float(timeout_s)
        self.operation = operation
        self._expires_at = time.monotonic() + self.timeout_s

    @classmethod
    def from_millis(cls, timeout_ms: Optional[int], *, operation: str = "query") -> Optional["Deadline"]:
        if timeout_ms is None:
            return None
        return cls(timeout_ms / 1000.0, operation=operation)

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self) -> None:
        if self.expired():
            raise QueryTimeout(self.operation, self.timeout_s)


def check_deadline(deadline: Optional[Deadline]) -> None:
    if deadline is not None:
        deadline.check()
