from __future__ import annotations

from fastapi import APIRouter, Depends, status

from event_reco.api.deps import get_pipeline
from event_reco.api.schemas import (
    ActionStreamIn,
    ApplyResponse,
    SimilarityUpdateOut,
    StreamAcceptedResponse,
    UserActionIn,
)
from event_reco.pipeline import RecommendationPipeline
from event_reco.services.ingest import build_action


router = APIRouter(tags=["actions"])


@router.post("/actions", response_model=ApplyResponse)
def post_action(evt: UserActionIn, pipeline: RecommendationPipeline = Depends(get_pipeline)) -> ApplyResponse:
    """Apply one action synchronously and return the similarity updates it produced."""
    action = build_action(
        user_id=evt.user_id,
        event_id=evt.event_id,
        action_kind=evt.action_kind,
        timestamp=evt.timestamp,
    )
    updates = pipeline.updater.apply(action)
    return ApplyResponse(
        user_id=action.user_id,
        event_id=action.event_id,
        updates=[
            SimilarityUpdateOut(event_a=u.event_a, event_b=u.event_b, score=u.score, timestamp=u.timestamp)
            for u in updates
        ],
    )


@router.post("/actions/stream", response_model=StreamAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
def post_action_stream(
    body: ActionStreamIn,
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> StreamAcceptedResponse:
    # validate the whole batch first so a bad record rejects it before anything is queued
    actions = [
        build_action(user_id=a.user_id, event_id=a.event_id, action_kind=a.action_kind, timestamp=a.timestamp)
        for a in body.actions
    ]
    pipeline.consumer.start()
    accepted = pipeline.consumer.submit_many(actions)
    return StreamAcceptedResponse(accepted=accepted, partitions=pipeline.consumer.num_partitions)
