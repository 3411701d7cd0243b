import threading

import pytest

from event_reco.services.stores import (
    EventWeightSumStore,
    InMemoryEventSimilarityStore,
    PairMinWeightStore,
    ShardedMap,
    UserEventWeightStore,
)


def test_sharded_map_compute_is_atomic_under_threads():
    m = ShardedMap(shards=4)

    def worker():
        for _ in range(1000):
            m.compute("k", lambda cur: (cur or 0) + 1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.get("k") == 8000


class TestUserEventWeightStore:
    def test_history_newest_first_and_distinct(self):
        store = UserEventWeightStore(shards=4)
        for e in (1, 2, 3):
            store.set_weight(7, e, 0.4)
            store.touch(7, e)
        store.set_weight(7, 1, 1.0)
        store.touch(7, 1)
        assert store.history(7) == [1, 3, 2]
        assert store.weights(7) == {1: 1.0, 2: 0.4, 3: 0.4}

    def test_absent_user(self):
        store = UserEventWeightStore(shards=4)
        assert store.get_weight(1, 1) == 0.0
        assert store.history(1) == []
        assert store.weights(1) == {}

    def test_weight_never_decreases(self):
        store = UserEventWeightStore(shards=4)
        store.set_weight(1, 1, 1.0)
        with pytest.raises(ValueError):
            store.set_weight(1, 1, 0.4)
        assert store.get_weight(1, 1) == 1.0


def test_event_weight_sums():
    sums = EventWeightSumStore(shards=4)
    assert sums.add(5, 0.4) == pytest.approx(0.4)
    assert sums.add(5, 0.6) == pytest.approx(1.0)
    assert sums.get_many([5, 6]) == {5: pytest.approx(1.0), 6: 0.0}


def test_pair_min_weight_is_order_independent():
    pairs = PairMinWeightStore(shards=4)
    pairs.add(3, 1, 0.4)
    pairs.add(1, 3, 0.2)
    assert pairs.get(1, 3) == pytest.approx(0.6)
    assert pairs.get(3, 1) == pytest.approx(0.6)
    assert pairs.partners(1) == {3}
    assert pairs.partners(3) == {1}
    with pytest.raises(ValueError):
        pairs.add(2, 2, 1.0)


class TestInMemoryEventSimilarityStore:
    def test_upsert_and_get_from_either_side(self):
        store = InMemoryEventSimilarityStore(shards=4)
        store.upsert(2, 1, 0.5)
        assert store.get(1, 2) == 0.5
        assert store.get(2, 1) == 0.5
        store.upsert(1, 2, 0.7)
        assert store.get(2, 1) == 0.7
        assert len(store) == 1
        assert store.get(1, 9) is None

    def test_top_similar_orders_by_score_then_event_id(self):
        store = InMemoryEventSimilarityStore(shards=4)
        store.upsert(1, 3, 0.7)
        store.upsert(1, 2, 0.7)
        store.upsert(4, 1, 0.9)
        store.upsert(5, 6, 1.0)
        assert store.top_similar(1, 10) == [(4, 0.9), (2, 0.7), (3, 0.7)]
        assert store.top_similar(1, 2) == [(4, 0.9), (2, 0.7)]
        assert store.top_similar(1, 10, excluding={4, 2}) == [(3, 0.7)]
        assert store.top_similar(99, 10) == []

    def test_scores_for(self):
        store = InMemoryEventSimilarityStore(shards=4)
        store.upsert(1, 2, 0.3)
        store.upsert(3, 1, 0.6)
        assert store.scores_for(1, [1, 2, 3, 4]) == {2: 0.3, 3: 0.6}

    def test_refresh_skips_undefined_scores(self):
        store = InMemoryEventSimilarityStore(shards=4)
        assert store.refresh(1, 2, lambda: None) is None
        assert store.get(1, 2) is None
        assert store.refresh(1, 2, lambda: 0.25) == 0.25
        assert store.get(2, 1) == 0.25
