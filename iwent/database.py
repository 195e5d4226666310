"""Database helpers for iwent."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

DATABASE_URL = f"sqlite:///{settings.database_path}"


def _make_engine(url: str) -> Engine:
    kwargs = {"connect_args": {"check_same_thread": False}, "future": True}
    if url.endswith(":memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def _make_session_factory(bind: Engine) -> scoped_session:
    return scoped_session(
        sessionmaker(
            bind=bind,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )


engine = _make_engine(DATABASE_URL)
SessionLocal = _make_session_factory(engine)


def configure(url: str) -> Engine:
    """Point the module-level engine and session factory at ``url``."""
    global engine, SessionLocal
    SessionLocal.remove()
    engine = _make_engine(url)
    SessionLocal = _make_session_factory(engine)
    return engine


@contextmanager
def get_session():
    """Context manager returning a SQLAlchemy session."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
