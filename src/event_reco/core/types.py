from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Tuple

from event_reco.core.constants import ActionKind


PairKey = Tuple[int, int]


def pair_key(event_a: int, event_b: int) -> PairKey:
    """Order-independent key for an unordered event pair."""
    a, b = int(event_a), int(event_b)
    return (a, b) if a <= b else (b, a)


@dataclass(frozen=True)
class UserAction:
    user_id: int
    event_id: int
    action_kind: ActionKind
    timestamp: datetime


@dataclass(frozen=True)
class EventSimilarityUpdate:
    """Outbound record; `event_a < event_b` always holds."""

    event_a: int
    event_b: int
    score: float
    timestamp: datetime


@dataclass(frozen=True)
class RecommendedEvent:
    event_id: int
    score: float
