from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import text

from runtracker.db.session import SessionLocal, build_engine, init_database


@pytest.fixture(autouse=True)
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "data"
    monkeypatch.setenv("RUNTRACKER_DATA_DIR", str(path))
    monkeypatch.delenv("RUNTRACKER_CONFIG", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    return path


@pytest.fixture
def engine(tmp_path: Path):
    engine = build_engine(f"sqlite:///{tmp_path / 'db' / 'test.db'}")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with SessionLocal(bind=engine) as session:
        yield session


@pytest.fixture
def count_rows(session):
    def _count(table: str) -> int:
        return session.execute(text(f"select count(*) from {table}")).scalar_one()

    return _count
