"""SQLAlchemy engine and session helpers for the local user table."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.config import get_settings

# ``Base`` is the parent class for every SQLAlchemy model defined in opbridge/models.
Base = declarative_base()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = get_settings().database_url
    # SQLite connections are shared by FastAPI worker threads.
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


@lru_cache(maxsize=1)
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db():
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()
