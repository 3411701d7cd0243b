from datetime import datetime, timedelta, timezone

import pytest

from event_reco.config import Settings
from event_reco.core.constants import ActionKind
from event_reco.core.types import UserAction
from event_reco.pipeline import build_pipeline
from event_reco.services.weights import ActionWeightTable


BASE_TS = datetime(2025, 1, 1, tzinfo=timezone.utc)
WEIGHTS = {"VIEW": 0.4, "REGISTER": 0.8, "LIKE": 1.0}

_clock = {"tick": 0}


def act(user_id: int, event_id: int, kind: str = "LIKE") -> UserAction:
    _clock["tick"] += 1
    return UserAction(
        user_id=user_id,
        event_id=event_id,
        action_kind=ActionKind(kind),
        timestamp=BASE_TS + timedelta(seconds=_clock["tick"]),
    )


def make_settings(**overrides) -> Settings:
    values = dict(
        ACTION_WEIGHTS=dict(WEIGHTS),
        NUM_PARTITIONS=2,
        STORE_SHARDS=8,
        SIMILARITY_BACKEND="memory",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def weights():
    return ActionWeightTable(WEIGHTS)


@pytest.fixture
def pipeline():
    p = build_pipeline(make_settings())
    yield p
    p.consumer.stop(drain=False)
