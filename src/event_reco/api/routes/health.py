from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from event_reco.api.deps import get_pipeline
from event_reco.pipeline import RecommendationPipeline


router = APIRouter()


@router.get("/health")
def health(pipeline: RecommendationPipeline = Depends(get_pipeline)) -> dict[str, Any]:
    return {
        "status": "ok",
        "similarity_backend": pipeline.settings.SIMILARITY_BACKEND,
        "consumer_running": pipeline.consumer.running,
        "pending_similarity_updates": len(pipeline.updater.pending_pairs()),
    }
