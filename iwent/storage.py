"""Database initialization and helpers."""

from __future__ import annotations

import logging

from sqlalchemy import inspect

from . import database
from .models import Base

logger = logging.getLogger("uvicorn.error")


def init_db() -> list[str]:
    """Create any missing tables; return the names of the tables created."""
    engine = database.engine
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = sorted(set(Base.metadata.tables) - existing)
    if created:
        logger.info("Created tables: %s", ", ".join(created))
    return created


def reset_db() -> None:
    """Drop and recreate every table."""
    engine = database.engine
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
