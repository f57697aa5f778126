"""
Database Configuration.

Centralized SQLAlchemy setup used across the application, the seed script
and the tests. This ensures the same engine options everywhere.

Environment Variables:
    DATABASE_URL - SQLAlchemy URL (e.g. postgresql+psycopg://... or sqlite:///./data/returns.db)
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENGINE & SESSIONS
# =============================================================================

def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite URLs get thread-sharing enabled (FastAPI runs sync work on a
    threadpool); in-memory SQLite shares one connection so every session
    sees the same database.
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the engine."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    # Models register themselves on Base.metadata when imported
    import use_cases.returns.models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info(f"Database schema ready ({engine.url.get_backend_name()})")
