from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserActionIn(BaseModel):
    user_id: int = Field(..., ge=1)
    event_id: int = Field(..., ge=1)
    action_kind: str
    timestamp: Optional[datetime] = None


class ActionStreamIn(BaseModel):
    actions: list[UserActionIn]


class SimilarityUpdateOut(BaseModel):
    event_a: int
    event_b: int
    score: float
    timestamp: datetime


class ApplyResponse(BaseModel):
    user_id: int
    event_id: int
    updates: list[SimilarityUpdateOut]


class StreamAcceptedResponse(BaseModel):
    accepted: int
    partitions: int


class EventScore(BaseModel):
    event_id: int
    score: float


class SimilarEventsResponse(BaseModel):
    event_id: int
    user_id: int
    events: list[EventScore]
    generated_at: datetime


class UserRecommendationsResponse(BaseModel):
    user_id: int
    recommendations: list[EventScore]
    strategy: str = "item_based_weighted_neighbours"
    generated_at: datetime


class InteractionsCountIn(BaseModel):
    event_ids: list[int] = Field(default_factory=list)


class InteractionsCountResponse(BaseModel):
    events: list[EventScore]
