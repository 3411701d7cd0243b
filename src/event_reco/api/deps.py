from __future__ import annotations

from typing import Optional

from fastapi import Request

from event_reco.core.time import Deadline
from event_reco.pipeline import RecommendationPipeline


def get_pipeline(request: Request) -> RecommendationPipeline:
    return request.app.state.pipeline


def query_deadline(pipeline: RecommendationPipeline, timeout_ms: Optional[int], operation: str) -> Deadline:
    if timeout_ms is None:
        timeout_ms = pipeline.settings.DEFAULT_QUERY_TIMEOUT_MS
    return Deadline(timeout_ms / 1000.0, operation=operation)
