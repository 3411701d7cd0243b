from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from event_reco.config import settings


class Base(DeclarativeBase):
    pass


def _normalize_database_url(url: str) -> str:
    """
    Accept either:
    - postgresql://... (common in hosted providers)
    - postgresql+psycopg://... (SQLAlchemy explicit driver form)
    - sqlite:///...
    and normalize Postgres URLs to use psycopg driver.
    """
    u = make_url(url)
    if u.drivername == "postgresql":
        u = u.set(drivername="postgresql+psycopg")
    return u.render_as_string(hide_password=False)


def make_engine(url: str) -> Engine:
    normalized = _normalize_database_url(url)
    u = make_url(normalized)
    if u.get_backend_name() == "sqlite" and u.database in (None, "", ":memory:"):
        # one shared connection, otherwise every checkout sees an empty database
        return create_engine(
            normalized,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(normalized, future=True, pool_pre_ping=True)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return make_engine(settings.DATABASE_URL)


def init_db(engine: Engine | None = None) -> None:
    # Import models so they are registered on Base.metadata
    from event_reco import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
