import math

import pytest

from conftest import act, make_settings
from event_reco.core.errors import QueryTimeout, ValidationError
from event_reco.core.time import Deadline
from event_reco.pipeline import build_pipeline


def _seed(p):
    """
    U1 likes 1 and 2, U2 likes 1 and views 3, U4 likes 5 and 2,
    U3 views 1 then likes 5.
    """
    for a in [
        act(1, 1, "LIKE"),
        act(1, 2, "LIKE"),
        act(2, 1, "LIKE"),
        act(2, 3, "VIEW"),
        act(4, 5, "LIKE"),
        act(4, 2, "LIKE"),
        act(3, 1, "VIEW"),
        act(3, 5, "LIKE"),
    ]:
        p.updater.apply(a)


SIM_1_2 = 1.0 / math.sqrt(2.4 * 2.0)
SIM_1_3 = 0.4 / math.sqrt(2.4 * 0.4)
SIM_1_5 = 0.4 / math.sqrt(2.4 * 2.0)
SIM_2_5 = 1.0 / math.sqrt(2.0 * 2.0)


def _pairs(results):
    return [(r.event_id, pytest.approx(r.score)) for r in results]


class TestSimilarEvents:
    def test_model_matches_hand_computation(self, pipeline):
        _seed(pipeline)
        assert pipeline.similarities.get(1, 2) == pytest.approx(SIM_1_2)
        assert pipeline.similarities.get(1, 3) == pytest.approx(SIM_1_3)
        assert pipeline.similarities.get(1, 5) == pytest.approx(SIM_1_5)
        assert pipeline.similarities.get(2, 5) == pytest.approx(SIM_2_5)
        assert pipeline.similarities.get(3, 5) is None

    def test_unknown_user_sees_all_neighbours(self, pipeline):
        _seed(pipeline)
        res = pipeline.engine.get_similar_events(1, 99, 10)
        assert _pairs(res) == [(2, SIM_1_2), (3, SIM_1_3), (5, SIM_1_5)]

    def test_excludes_user_history(self, pipeline):
        _seed(pipeline)
        res = pipeline.engine.get_similar_events(1, 3, 10)
        assert _pairs(res) == [(2, SIM_1_2), (3, SIM_1_3)]

    def test_max_results_limits(self, pipeline):
        _seed(pipeline)
        res = pipeline.engine.get_similar_events(1, 99, 1)
        assert [r.event_id for r in res] == [2]

    def test_cold_start_event(self, pipeline):
        _seed(pipeline)
        assert pipeline.engine.get_similar_events(42, 3, 10) == []

    @pytest.mark.parametrize("bad", [0, -5])
    def test_non_positive_max_results(self, pipeline, bad):
        with pytest.raises(ValidationError):
            pipeline.engine.get_similar_events(1, 1, bad)


class TestUserRecommendations:
    def test_weighted_neighbour_prediction(self, pipeline):
        _seed(pipeline)
        res = pipeline.engine.get_recommendations_for_user(3, 10)
        expected_2 = (SIM_2_5 * 1.0 + SIM_1_2 * 0.4) / (SIM_2_5 + SIM_1_2)
        assert _pairs(res) == [(2, expected_2), (3, 0.4)]

    def test_never_recommends_interacted_events(self, pipeline):
        _seed(pipeline)
        res = pipeline.engine.get_recommendations_for_user(1, 10)
        ids = [r.event_id for r in res]
        assert 1 not in ids and 2 not in ids
        assert set(ids) <= {3, 5}

    def test_ties_broken_by_event_id(self, pipeline):
        # U1 likes 10, 30, 20; U2 likes 10 only -> 20 and 30 symmetric w.r.t. 10
        for a in [act(1, 10), act(1, 30), act(1, 20), act(2, 10)]:
            pipeline.updater.apply(a)
        res = pipeline.engine.get_recommendations_for_user(2, 10)
        assert [r.event_id for r in res] == [20, 30]
        assert res[0].score == pytest.approx(res[1].score)

    def test_deterministic(self, pipeline):
        _seed(pipeline)
        first = pipeline.engine.get_recommendations_for_user(3, 10)
        for _ in range(5):
            assert pipeline.engine.get_recommendations_for_user(3, 10) == first

    def test_cold_start_user(self, pipeline):
        _seed(pipeline)
        assert pipeline.engine.get_recommendations_for_user(404, 10) == []

    def test_empty_system_cold_start(self, pipeline):
        assert pipeline.engine.get_recommendations_for_user(1, 10) == []
        assert pipeline.engine.get_similar_events(1, 1, 10) == []

    def test_recent_window_limits_seeds(self):
        p = build_pipeline(make_settings(MAX_RECENT_EVENTS_FOR_PREDICTION=1))
        _seed(p)
        # U3's most recent event is 5, whose only unseen neighbour is 2
        res = p.engine.get_recommendations_for_user(3, 10)
        assert [r.event_id for r in res] == [2]

    def test_max_results_capped(self):
        p = build_pipeline(make_settings(MAX_RESULTS=1))
        _seed(p)
        assert len(p.engine.get_recommendations_for_user(3, 50)) == 1


class TestDeadlines:
    def test_expired_deadline_raises(self, pipeline):
        _seed(pipeline)
        expired = Deadline(0.0, operation="get_recommendations_for_user")
        with pytest.raises(QueryTimeout):
            pipeline.engine.get_recommendations_for_user(3, 10, deadline=expired)
        with pytest.raises(QueryTimeout):
            pipeline.engine.get_similar_events(1, 3, 10, deadline=expired)

    def test_generous_deadline(self, pipeline):
        _seed(pipeline)
        res = pipeline.engine.get_recommendations_for_user(3, 10, deadline=Deadline(30.0))
        assert [r.event_id for r in res] == [2, 3]

    def test_from_millis(self):
        assert Deadline.from_millis(None) is None
        d = Deadline.from_millis(5000)
        assert 0 < d.remaining() <= 5.0
        assert not d.expired()


def test_interactions_count(pipeline):
    _seed(pipeline)
    res = pipeline.engine.get_interactions_count([5, 1, 42, 1])
    assert _pairs(res) == [(1, 2.4), (5, 2.0)]
    assert pipeline.engine.get_interactions_count([]) == []
