"""
Incremental maintenance of the event-similarity model.

For every user action the updater applies a weight delta to three aggregates
(user-event max weight, per-event weight sum, per-pair min-weight sum) and
recomputes the similarity only for pairs whose inputs changed:

    similarity(A, B) = pair_min(A, B) / sqrt(sum(A) * sum(B))
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime
from typing import Dict, List, Optional, Set

from event_reco.core.errors import TransientStoreError
from event_reco.core.types import EventSimilarityUpdate, PairKey, UserAction, pair_key
from event_reco.services.stores import (
    EventSimilarityStore,
    EventWeightSumStore,
    PairMinWeightStore,
    StripedLocks,
    UserEventWeightStore,
)
from event_reco.services.weights import ActionWeightTable


logger = logging.getLogger(__name__)


def similarity_score(min_weight_sum: float, weight_sum_a: float, weight_sum_b: float) -> Optional[float]:
    """None while either event has no weight yet."""
    if weight_sum_a <= 0 or weight_sum_b <= 0:
        return None
    score = min_weight_sum / math.sqrt(weight_sum_a * weight_sum_b)
    # float rounding can push the bound a hair past 1.0
    return min(1.0, max(0.0, score))


class SimilarityUpdater:
    def __init__(
        self,
        weights: ActionWeightTable,
        user_weights: UserEventWeightStore,
        weight_sums: EventWeightSumStore,
        pair_mins: PairMinWeightStore,
        similarities: EventSimilarityStore,
        *,
        refresh_partners: bool = True,
        lock_stripes: int = 64,
    ):
        self.weights = weights
        self.user_weights = user_weights
        self.weight_sums = weight_sums
        self.pair_mins = pair_mins
        self.similarities = similarities
        self.refresh_partners = refresh_partners
        self._user_locks = StripedLocks(lock_stripes)
        self._pending: Dict[PairKey, datetime] = {}
        self._pending_lock = threading.Lock()

    def apply(self, action: UserAction) -> List[EventSimilarityUpdate]:
        # Unknown kinds fail here, before anything is mutated
        kind = self.weights.parse_kind(action.action_kind)
        new_weight = self.weights.weight_of(kind)
        user_id, event_id = int(action.user_id), int(action.event_id)

        with self._user_locks.lock_for(user_id):
            old_weight = self.user_weights.get_weight(user_id, event_id)
            if new_weight <= old_weight:
                logger.debug(
                    "No-op for user %s event %s: new weight %s <= old weight %s",
                    user_id, event_id, new_weight, old_weight,
                )
                return []

            self.user_weights.set_weight(user_id, event_id, new_weight)
            self.weight_sums.add(event_id, new_weight - old_weight)

            touched: Set[int] = set()
            for other_id, other_weight in self.user_weights.weights(user_id).items():
                if other_id == event_id:
                    continue
                min_delta = min(new_weight, other_weight) - min(old_weight, other_weight)
                if min_delta > 0:
                    self.pair_mins.add(event_id, other_id, min_delta)
                    touched.add(other_id)

            self.user_weights.touch(user_id, event_id)

            affected = set(touched)
            if self.refresh_partners:
                affected |= self.pair_mins.partners(event_id)

            updates = self._refresh_pairs(event_id, sorted(affected), action)

        logger.info(
            "Applied %s for user %s event %s (weight %s -> %s): %d pairs touched, %d similarities updated",
            kind.value, user_id, event_id, old_weight, new_weight, len(touched), len(updates),
        )
        return updates

    def _compute(self, event_a: int, event_b: int) -> Optional[float]:
        return similarity_score(
            self.pair_mins.get(event_a, event_b),
            self.weight_sums.get(event_a),
            self.weight_sums.get(event_b),
        )

    def _refresh_pairs(self, event_id: int, others: List[int], action: UserAction) -> List[EventSimilarityUpdate]:
        updates: List[EventSimilarityUpdate] = []
        failed: List[PairKey] = []
        last_error: Optional[TransientStoreError] = None
        for other_id in others:
            a, b = pair_key(event_id, other_id)
            try:
                score = self.similarities.refresh(a, b, lambda a=a, b=b: self._compute(a, b))
            except TransientStoreError as e:
                failed.append((a, b))
                last_error = e
                continue
            if score is None:
                continue
            logger.debug("Similarity for pair (%s, %s): %s", a, b, score)
            updates.append(EventSimilarityUpdate(event_a=a, event_b=b, score=score, timestamp=action.timestamp))

        if failed:
            with self._pending_lock:
                for key in failed:
                    self._pending[key] = action.timestamp
            logger.warning("Similarity store failed for %d pairs; kept for retry", len(failed))
            raise TransientStoreError(f"{len(failed)} similarity updates pending: {last_error}") from last_error
        return updates

    def pending_pairs(self) -> List[PairKey]:
        with self._pending_lock:
            return sorted(self._pending)

    def retry_pending(self) -> List[EventSimilarityUpdate]:
        """
        Re-attempt similarity upserts that failed earlier.

        Aggregates were already updated when the original call failed, so a
        redelivered action is a no-op; this is what brings the similarity store
        back in line with them.
        """
        with self._pending_lock:
            pending = dict(self._pending)
            self._pending.clear()
        if not pending:
            return []

        updates: List[EventSimilarityUpdate] = []
        still_failing: Dict[PairKey, datetime] = {}
        for (a, b), ts in sorted(pending.items()):
            try:
                score = self.similarities.refresh(a, b, lambda a=a, b=b: self._compute(a, b))
            except TransientStoreError:
                still_failing[(a, b)] = ts
                continue
            if score is not None:
                updates.append(EventSimilarityUpdate(event_a=a, event_b=b, score=score, timestamp=ts))

        if still_failing:
            with self._pending_lock:
                for key, ts in still_failing.items():
                    self._pending.setdefault(key, ts)
            raise TransientStoreError(f"{len(still_failing)} similarity updates still pending")
        logger.info("Retried %d pending similarity updates", len(updates))
        return updates
