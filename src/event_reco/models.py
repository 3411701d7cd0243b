from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Index
from sqlalchemy.orm import Mapped, mapped_column

from event_reco.core.time import utcnow
from event_reco.db import Base


class EventSimilarityRow(Base):
    """Latest similarity per unordered event pair; `event_a < event_b`."""

    __tablename__ = "event_similarities"

    event_a: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    event_b: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    score: Mapped[float] = mapped_column(Float, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("idx_es_event_b", "event_b"),
        Index("idx_es_event_a_score", "event_a", "score"),
    )
