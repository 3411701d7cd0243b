from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix

from event_reco.core.types import PairKey, UserAction
from event_reco.services.stores import EventSimilarityStore
from event_reco.services.weights import ActionWeightTable


@dataclass(frozen=True)
class UserEventIndex:
    """Mapping between real ids and row/column positions in the matrix."""

    user_to_row: Dict[int, int]
    row_to_user: List[int]
    event_to_col: Dict[int, int]
    col_to_event: List[int]


@dataclass(frozen=True)
class BatchModel:
    weights: csr_matrix
    index: UserEventIndex
    weight_sums: Dict[int, float]
    pair_min_sums: Dict[PairKey, float]
    similarities: Dict[PairKey, float]


@dataclass(frozen=True)
class Divergence:
    event_a: int
    event_b: int
    expected: Optional[float]
    actual: Optional[float]


def build_weight_matrix(actions: Iterable[UserAction], weights: ActionWeightTable) -> Tuple[csr_matrix, UserEventIndex]:
    """
    Build the sparse user x event matrix where each cell is the max weight of
    all actions for that (user, event).
    """
    best: Dict[Tuple[int, int], float] = {}
    for a in actions:
        key = (int(a.user_id), int(a.event_id))
        w = weights.weight_of(a.action_kind)
        if w > best.get(key, 0.0):
            best[key] = w

    user_ids = sorted({u for u, _ in best})
    event_ids = sorted({e for _, e in best})
    index = UserEventIndex(
        user_to_row={uid: i for i, uid in enumerate(user_ids)},
        row_to_user=user_ids,
        event_to_col={eid: j for j, eid in enumerate(event_ids)},
        col_to_event=event_ids,
    )
    if not best:
        return csr_matrix((0, 0), dtype=np.float64), index

    rows = np.array([index.user_to_row[u] for u, _ in best], dtype=np.int64)
    cols = np.array([index.event_to_col[e] for _, e in best], dtype=np.int64)
    data = np.array(list(best.values()), dtype=np.float64)
    M = csr_matrix((data, (rows, cols)), shape=(len(user_ids), len(event_ids)))
    return M, index


def recompute_model(actions: Sequence[UserAction], weights: ActionWeightTable) -> BatchModel:
    """
    From-scratch computation of every aggregate. Quadratic in the number of
    events, so meant for audits and tests on bounded logs, not for serving.
    """
    M, index = build_weight_matrix(actions, weights)
    n_events = M.shape[1]
    if n_events == 0:
        return BatchModel(M, index, {}, {}, {})

    dense = M.toarray()
    sums = dense.sum(axis=0)
    present = dense > 0

    pair_mins: Dict[PairKey, float] = {}
    similarities: Dict[PairKey, float] = {}
    for i in range(n_events):
        # only users who have both events contribute
        both = present[:, [i]] & present[:, i + 1 :]
        mins = np.where(both, np.minimum(dense[:, [i]], dense[:, i + 1 :]), 0.0).sum(axis=0)
        for offset in np.nonzero(both.any(axis=0))[0]:
            j = i + 1 + int(offset)
            key = (index.col_to_event[i], index.col_to_event[j])
            pair_mins[key] = float(mins[offset])
            similarities[key] = min(1.0, float(mins[offset] / np.sqrt(sums[i] * sums[j])))

    weight_sums = {index.col_to_event[j]: float(sums[j]) for j in range(n_events)}
    return BatchModel(M, index, weight_sums, pair_mins, similarities)


def audit_similarities(
    actions: Sequence[UserAction],
    weights: ActionWeightTable,
    store: EventSimilarityStore,
    *,
    tolerance: float = 1e-9,
) -> List[Divergence]:
    """Compare the incremental similarity store against a batch recomputation."""
    model = recompute_model(actions, weights)
    divergences: List[Divergence] = []
    for (a, b), expected in sorted(model.similarities.items()):
        actual = store.get(a, b)
        if actual is None or abs(actual - expected) > tolerance:
            divergences.append(Divergence(a, b, expected, actual))
    return divergences
