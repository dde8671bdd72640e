"""
Database engine factory.

Every store is built from get_engine(); nothing else calls create_engine().
SQLite gets a generous busy timeout so two accidental concurrent runs wait
on each other instead of failing.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..utils.logger import get_logger
from .schema import Base

logger = get_logger()

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    Args:
        database_url: SQLAlchemy URL (sqlite:///..., postgresql+psycopg://...)
        echo: Log emitted SQL

    Returns:
        Configured Engine
    """
    options: dict[str, Any] = {"echo": echo, "future": True}

    if database_url.startswith("sqlite"):
        options["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    else:
        options["pool_pre_ping"] = True

    engine = create_engine(database_url, **options)

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.debug(
        "Database engine created",
        extra={"dialect": engine.dialect.name, "url": engine.url.render_as_string()},
    )
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_schema(engine: Engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(engine)


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)
