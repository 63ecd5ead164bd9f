from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from loguru import logger
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from runtracker.db.base import Base
from runtracker.db.config import get_database_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str | None = None, echo: bool = False) -> Engine:
    engine = create_engine(url or get_database_url(), echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        database = engine.url.database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_database(engine: Engine) -> None:
    """Create the files, records and laps tables if they do not exist yet."""
    import runtracker.db.models  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(engine)
    logger.debug(f"Completed database initialization for {engine.url}")


SessionLocal = sessionmaker(autoflush=False, autocommit=False, future=True)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    engine = build_engine()
    init_database(engine)
    return engine
