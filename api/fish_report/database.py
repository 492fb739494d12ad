# fish_report/database.py
"""
SQL database connection for the optional SQL-backed local store.

Uses SQLAlchemy 2.0 (sync engine). Default URL is a SQLite file under
FISH_DATA_ROOT, any SQLAlchemy URL works.
"""
from __future__ import annotations
from typing import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


# ============================================================================
# Base class for all ORM models
# ============================================================================

class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# ============================================================================
# Engine and Session Factory
# ============================================================================

def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets check_same_thread off for the threadpool."""
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db(engine: Engine) -> None:
    """Create tables that do not exist yet."""
    # models must be imported so their tables are registered on Base.metadata
    from fish_report import db_models  # noqa: F401
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Context manager for a database session.

    Usage:
        with session_scope(factory) as db:
            db.execute(...)
    """
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


# ============================================================================
# Health Check
# ============================================================================

def check_db_health(engine: Engine) -> dict:
    """Check database connectivity and return status."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).scalar()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
