from __future__ import annotations

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.pool import StaticPool

from lifeline.infrastructure.db.engine import SQLITE_BUSY_TIMEOUT_MS, engine_options, get_engine


def test_file_sqlite_engine_applies_pragmas(tmp_path: Path) -> None:
    engine = get_engine(f"sqlite:///{(tmp_path / 'engine.db').as_posix()}")
    try:
        with engine.connect() as connection:
            assert connection.execute(text("PRAGMA foreign_keys")).scalar() == 1
            assert connection.execute(text("PRAGMA journal_mode")).scalar() == "wal"
            assert connection.execute(text("PRAGMA busy_timeout")).scalar() == SQLITE_BUSY_TIMEOUT_MS
    finally:
        engine.dispose()


def test_in_memory_sqlite_shares_one_connection() -> None:
    options = engine_options("sqlite://")
    assert options["poolclass"] is StaticPool
    assert options["connect_args"] == {"check_same_thread": False}

    engine = get_engine("sqlite://")
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE marker (id INTEGER)"))
    with engine.connect() as connection:
        assert connection.execute(text("SELECT count(*) FROM marker")).scalar() == 0


def test_server_backends_ping_pooled_connections() -> None:
    assert engine_options("postgresql+psycopg://user:pw@db/lifeline") == {"pool_pre_ping": True}
