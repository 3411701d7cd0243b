from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from event_reco.core.errors import ValidationError
from event_reco.core.time import Deadline, check_deadline
from event_reco.core.types import RecommendedEvent
from event_reco.services.stores import (
    EventSimilarityStore,
    EventWeightSumStore,
    UserEventWeightStore,
    rank_scores,
)


logger = logging.getLogger(__name__)


class RecommendationEngine:
    """Read-only queries over the similarity model. Never mutates a store."""

    def __init__(
        self,
        similarities: EventSimilarityStore,
        user_weights: UserEventWeightStore,
        weight_sums: EventWeightSumStore,
        *,
        max_recent_events: int = 10,
        max_neighbours: int = 10,
        max_results_cap: int = 200,
    ):
        self.similarities = similarities
        self.user_weights = user_weights
        self.weight_sums = weight_sums
        self.max_recent_events = max_recent_events
        self.max_neighbours = max_neighbours
        self.max_results_cap = max_results_cap

    def _limit(self, max_results: int) -> int:
        if max_results < 1:
            raise ValidationError("max_results must be >= 1")
        return min(int(max_results), self.max_results_cap)

    def get_similar_events(
        self,
        event_id: int,
        user_id: int,
        max_results: int,
        *,
        deadline: Optional[Deadline] = None,
    ) -> List[RecommendedEvent]:
        k = self._limit(max_results)
        check_deadline(deadline)
        history = self.user_weights.history(user_id)
        top = self.similarities.top_similar(event_id, k, excluding=history)
        check_deadline(deadline)
        return [RecommendedEvent(event_id=e, score=s) for e, s in top]

    def get_recommendations_for_user(
        self,
        user_id: int,
        max_results: int,
        *,
        deadline: Optional[Deadline] = None,
    ) -> List[RecommendedEvent]:
        k = self._limit(max_results)
        check_deadline(deadline)

        history = self.user_weights.history(user_id)
        if not history:
            return []
        user_weights = self.user_weights.weights(user_id)
        recent = history[: self.max_recent_events]

        # candidate -> max similarity to any recent event
        candidates: Dict[int, float] = {}
        for seed in recent:
            check_deadline(deadline)
            for cand, score in self.similarities.top_similar(seed, self.max_neighbours, excluding=history):
                if score > candidates.get(cand, float("-inf")):
                    candidates[cand] = score

        predictions: List[tuple[int, float]] = []
        for cand in sorted(candidates):
            check_deadline(deadline)
            if cand in user_weights:
                continue
            neighbours = self._neighbours(cand, history)
            sim_total = sum(s for _, s in neighbours)
            if sim_total == 0:
                continue
            weighted = sum(s * user_weights.get(n, 0.0) for n, s in neighbours)
            predictions.append((cand, weighted / sim_total))

        ranked = rank_scores(predictions, k)
        logger.debug(
            "User %s: %d recent, %d candidates, %d scored", user_id, len(recent), len(candidates), len(predictions)
        )
        return [RecommendedEvent(event_id=e, score=s) for e, s in ranked]

    def _neighbours(self, candidate: int, history: Iterable[int]) -> List[tuple[int, float]]:
        """Top interacted events by similarity to `candidate`; unrecorded pairs are dropped."""
        scores = self.similarities.scores_for(candidate, history)
        return rank_scores(scores.items(), self.max_neighbours)

    def get_interactions_count(
        self,
        event_ids: Iterable[int],
        *,
        deadline: Optional[Deadline] = None,
    ) -> List[RecommendedEvent]:
        check_deadline(deadline)
        sums = self.weight_sums.get_many(sorted(set(event_ids)))
        return [RecommendedEvent(event_id=e, score=s) for e, s in sums.items() if s > 0]
