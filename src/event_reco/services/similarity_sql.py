from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, case, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from event_reco.core.errors import TransientStoreError
from event_reco.core.types import pair_key
from event_reco.db import init_db
from event_reco.models import EventSimilarityRow
from event_reco.services.stores import StripedLocks


logger = logging.getLogger(__name__)


class SqlEventSimilarityStore:
    """EventSimilarityStore backed by the `event_similarities` table."""

    def __init__(self, session_factory: sessionmaker, *, lock_stripes: int = 64):
        self._session_factory = session_factory
        self._pair_locks = StripedLocks(lock_stripes)

    def _session(self) -> Session:
        return self._session_factory()

    def init_schema(self) -> None:
        init_db(self._session_factory.kw["bind"])

    def upsert(self, event_a: int, event_b: int, score: float) -> None:
        if event_a == event_b:
            raise ValueError("similarity requires two distinct events")
        a, b = pair_key(event_a, event_b)
        try:
            with self._session() as db:
                row = db.get(EventSimilarityRow, (a, b))
                if row is None:
                    db.add(EventSimilarityRow(event_a=a, event_b=b, score=float(score)))
                else:
                    logger.debug("Updating similarity (%s, %s): %s -> %s", a, b, row.score, score)
                    row.score = float(score)
                db.commit()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"failed to upsert similarity ({a}, {b}): {e}") from e

    def get(self, event_a: int, event_b: int) -> Optional[float]:
        a, b = pair_key(event_a, event_b)
        try:
            with self._session() as db:
                row = db.get(EventSimilarityRow, (a, b))
                return None if row is None else float(row.score)
        except SQLAlchemyError as e:
            raise TransientStoreError(f"failed to read similarity ({a}, {b}): {e}") from e

    def refresh(self, event_a: int, event_b: int, compute: Callable[[], Optional[float]]) -> Optional[float]:
        with self._pair_locks.lock_for(pair_key(event_a, event_b)):
            score = compute()
            if score is not None:
                self.upsert(event_a, event_b, score)
            return score

    def top_similar(self, event_id: int, k: int, excluding: Iterable[int] = ()) -> List[Tuple[int, float]]:
        if k <= 0:
            return []
        excluded = list(set(excluding))
        other = case(
            (EventSimilarityRow.event_a == event_id, EventSimilarityRow.event_b),
            else_=EventSimilarityRow.event_a,
        )
        q = select(other.label("other_event"), EventSimilarityRow.score).where(
            or_(EventSimilarityRow.event_a == event_id, EventSimilarityRow.event_b == event_id)
        )
        if excluded:
            q = q.where(other.not_in(excluded))
        q = q.order_by(EventSimilarityRow.score.desc(), other.asc()).limit(k)
        try:
            with self._session() as db:
                return [(int(r.other_event), float(r.score)) for r in db.execute(q).all()]
        except SQLAlchemyError as e:
            raise TransientStoreError(f"failed to read neighbours of {event_id}: {e}") from e

    def scores_for(self, event_id: int, others: Iterable[int]) -> Dict[int, float]:
        ids = [o for o in set(others) if o != event_id]
        if not ids:
            return {}
        q = select(EventSimilarityRow.event_a, EventSimilarityRow.event_b, EventSimilarityRow.score).where(
            or_(
                and_(EventSimilarityRow.event_a == event_id, EventSimilarityRow.event_b.in_(ids)),
                and_(EventSimilarityRow.event_b == event_id, EventSimilarityRow.event_a.in_(ids)),
            )
        )
        try:
            with self._session() as db:
                rows = db.execute(q).all()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"failed to read similarities for {event_id}: {e}") from e
        out: Dict[int, float] = {}
        for a, b, score in rows:
            out[int(b) if int(a) == event_id else int(a)] = float(score)
        return out
