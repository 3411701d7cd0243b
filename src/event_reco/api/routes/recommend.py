from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from event_reco.api.deps import get_pipeline, query_deadline
from event_reco.api.schemas import (
    EventScore,
    InteractionsCountIn,
    InteractionsCountResponse,
    SimilarEventsResponse,
    UserRecommendationsResponse,
)
from event_reco.core.time import utcnow
from event_reco.pipeline import RecommendationPipeline


router = APIRouter(tags=["recommendations"])


@router.get("/events/{event_id}/similar", response_model=SimilarEventsResponse)
def similar_events(
    event_id: int = Path(..., ge=1),
    user_id: int = Query(..., ge=1),
    max_results: Optional[int] = Query(default=None, ge=1),
    timeout_ms: Optional[int] = Query(default=None, ge=1),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> SimilarEventsResponse:
    deadline = query_deadline(pipeline, timeout_ms, "get_similar_events")
    max_results = max_results or pipeline.settings.DEFAULT_MAX_RESULTS
    events = pipeline.engine.get_similar_events(event_id, user_id, max_results, deadline=deadline)
    return SimilarEventsResponse(
        event_id=event_id,
        user_id=user_id,
        events=[EventScore(event_id=e.event_id, score=e.score) for e in events],
        generated_at=utcnow(),
    )


@router.get("/users/{user_id}/recommendations", response_model=UserRecommendationsResponse)
def user_recommendations(
    user_id: int = Path(..., ge=1),
    max_results: Optional[int] = Query(default=None, ge=1),
    timeout_ms: Optional[int] = Query(default=None, ge=1),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> UserRecommendationsResponse:
    deadline = query_deadline(pipeline, timeout_ms, "get_recommendations_for_user")
    max_results = max_results or pipeline.settings.DEFAULT_MAX_RESULTS
    recs = pipeline.engine.get_recommendations_for_user(user_id, max_results, deadline=deadline)
    return UserRecommendationsResponse(
        user_id=user_id,
        recommendations=[EventScore(event_id=r.event_id, score=r.score) for r in recs],
        generated_at=utcnow(),
    )


@router.post("/events/interactions-count", response_model=InteractionsCountResponse)
def interactions_count(
    body: InteractionsCountIn,
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> InteractionsCountResponse:
    counts = pipeline.engine.get_interactions_count(body.event_ids)
    return InteractionsCountResponse(events=[EventScore(event_id=c.event_id, score=c.score) for c in counts])
