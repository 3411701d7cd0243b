"""Error taxonomy shared by the updater, the stores and the query engine."""

from __future__ import annotations


class RecommendationError(Exception):
    """Base class for every error raised by the recommendation pipeline."""


class ValidationError(RecommendationError):
    """Input rejected before any store mutation; the caller must fix and resend."""


class UnknownActionKind(ValidationError):
    def __init__(self, kind: object):
        super().__init__(f"unknown action kind: {kind!r}")
        self.kind = kind


class TransientStoreError(RecommendationError):
    """A store was unavailable. Updates and queries are both safe to retry."""


class QueryTimeout(RecommendationError):
    def __init__(self, operation: str, timeout_s: float):
        super().__init__(f"{operation} exceeded deadline of {timeout_s:.3f}s")
        self.operation = operation
        self.timeout_s = timeout_s
