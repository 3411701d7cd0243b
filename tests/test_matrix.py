import math

import pytest

from conftest import act
from event_reco.services.matrix import audit_similarities, build_weight_matrix, recompute_model
from event_reco.services.stores import InMemoryEventSimilarityStore


def test_weight_matrix_keeps_max_per_cell(weights):
    M, index = build_weight_matrix([act(1, 10, "LIKE"), act(1, 10, "VIEW"), act(2, 20, "REGISTER")], weights)
    assert M.shape == (2, 2)
    assert index.row_to_user == [1, 2]
    assert index.col_to_event == [10, 20]
    dense = M.toarray()
    assert dense[index.user_to_row[1], index.event_to_col[10]] == 1.0
    assert dense[index.user_to_row[2], index.event_to_col[20]] == 0.8


def test_empty_log(weights):
    model = recompute_model([], weights)
    assert model.weights.shape == (0, 0)
    assert model.similarities == {}


def test_recompute_matches_worked_example(weights):
    model = recompute_model([act(1, 1, "VIEW"), act(1, 2, "LIKE"), act(2, 1, "LIKE")], weights)
    assert model.weight_sums == {1: pytest.approx(1.4), 2: pytest.approx(1.0)}
    assert model.pair_min_sums == {(1, 2): pytest.approx(0.4)}
    assert model.similarities[(1, 2)] == pytest.approx(0.4 / math.sqrt(1.4))


def test_pairs_without_shared_users_are_absent(weights):
    model = recompute_model([act(1, 1), act(2, 2)], weights)
    assert model.pair_min_sums == {}


def test_audit_reports_divergences(weights):
    actions = [act(1, 1, "VIEW"), act(1, 2, "LIKE"), act(1, 3, "LIKE")]
    store = InMemoryEventSimilarityStore(shards=2)
    store.upsert(1, 2, 0.4 / math.sqrt(0.4))
    store.upsert(2, 3, 0.5)

    divergences = audit_similarities(actions, weights, store)
    assert [(d.event_a, d.event_b) for d in divergences] == [(1, 3), (2, 3)]
    assert divergences[0].actual is None
    assert divergences[1].expected == pytest.approx(1.0)


def test_incremental_pipeline_passes_audit(pipeline):
    actions = [act(u, e, k) for u, e, k in [
        (1, 1, "VIEW"), (1, 2, "LIKE"), (2, 1, "LIKE"), (2, 2, "REGISTER"),
        (3, 3, "LIKE"), (3, 1, "VIEW"), (1, 3, "REGISTER"), (2, 1, "VIEW"),
    ]]
    for a in actions:
        pipeline.updater.apply(a)
    assert audit_similarities(actions, pipeline.weights, pipeline.similarities) == []
