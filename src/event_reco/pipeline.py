from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from event_reco.config import Settings, settings as default_settings
from event_reco.services.recommend import RecommendationEngine
from event_reco.services.stores import (
    EventSimilarityStore,
    EventWeightSumStore,
    InMemoryEventSimilarityStore,
    PairMinWeightStore,
    UserEventWeightStore,
)
from event_reco.services.stream import PartitionedActionConsumer, UpdateSink, log_sink
from event_reco.services.updater import SimilarityUpdater
from event_reco.services.weights import ActionWeightTable


@dataclass
class RecommendationPipeline:
    """Explicit handles to every store plus the components that use them."""

    settings: Settings
    weights: ActionWeightTable
    user_weights: UserEventWeightStore
    weight_sums: EventWeightSumStore
    pair_mins: PairMinWeightStore
    similarities: EventSimilarityStore
    updater: SimilarityUpdater
    engine: RecommendationEngine
    consumer: PartitionedActionConsumer


def _similarity_store(cfg: Settings) -> EventSimilarityStore:
    if cfg.SIMILARITY_BACKEND == "sql":
        from event_reco.db import get_engine, make_engine, make_sessionmaker
        from event_reco.services.similarity_sql import SqlEventSimilarityStore

        engine = get_engine() if cfg is default_settings else make_engine(cfg.DATABASE_URL)
        return SqlEventSimilarityStore(make_sessionmaker(engine), lock_stripes=cfg.STORE_SHARDS)
    return InMemoryEventSimilarityStore(cfg.STORE_SHARDS)


def build_pipeline(
    cfg: Optional[Settings] = None,
    *,
    similarities: Optional[EventSimilarityStore] = None,
    sink: UpdateSink = log_sink,
) -> RecommendationPipeline:
    cfg = cfg or default_settings
    weights = ActionWeightTable(cfg.ACTION_WEIGHTS)
    user_weights = UserEventWeightStore(cfg.STORE_SHARDS)
    weight_sums = EventWeightSumStore(cfg.STORE_SHARDS)
    pair_mins = PairMinWeightStore(cfg.STORE_SHARDS)
    sim_store = similarities if similarities is not None else _similarity_store(cfg)

    updater = SimilarityUpdater(
        weights,
        user_weights,
        weight_sums,
        pair_mins,
        sim_store,
        refresh_partners=cfg.REFRESH_PARTNER_SIMILARITIES,
        lock_stripes=cfg.STORE_SHARDS,
    )
    engine = RecommendationEngine(
        sim_store,
        user_weights,
        weight_sums,
        max_recent_events=cfg.MAX_RECENT_EVENTS_FOR_PREDICTION,
        max_neighbours=cfg.MAX_NEIGHBOURS_FOR_PREDICTION,
        max_results_cap=cfg.MAX_RESULTS,
    )
    consumer = PartitionedActionConsumer(
        updater,
        num_partitions=cfg.NUM_PARTITIONS,
        queue_size=cfg.PARTITION_QUEUE_SIZE,
        max_redeliveries=cfg.MAX_REDELIVERIES,
        sink=sink,
    )
    return RecommendationPipeline(
        settings=cfg,
        weights=weights,
        user_weights=user_weights,
        weight_sums=weight_sums,
        pair_mins=pair_mins,
        similarities=sim_store,
        updater=updater,
        engine=engine,
        consumer=consumer,
    )
