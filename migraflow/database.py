"""
Database connection and session management for migraflow.

Provides:
- get_engine(): SQLAlchemy engine for DATABASE_URL (created on first use)
- get_session_factory(): sessionmaker bound to that engine
- get_db(): context manager for DB sessions
- init_db(): create all tables (tests / local development; production uses Alembic)
"""

from contextlib import contextmanager
from functools import lru_cache
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings


@lru_cache(maxsize=None)
def get_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or get_settings().database_url

    connect_args = {}
    if url.startswith("sqlite"):
        # Sessions are used from worker threads (asyncio.to_thread, Celery)
        connect_args["check_same_thread"] = False

    # pool_pre_ping=True ensures connections are valid before using them
    return create_engine(url, pool_pre_ping=True, echo=False, connect_args=connect_args)


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Session factory used by the execution store.

    expire_on_commit=False keeps loaded attributes readable after the
    session that loaded them has closed.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine or get_engine(),
    )


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            workflow = db.get(Workflow, workflow_id)
            db.add(execution)
            db.commit()

    The session is closed when leaving the block and rolled back if an
    exception escapes it.
    """
    db = (session_factory or get_session_factory())()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    from .models import Base

    Base.metadata.create_all(engine or get_engine())
