from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, inspect

from lifeline.bootstrap import startup


def test_migrations_create_schema(tmp_path: Path) -> None:
    db_file = tmp_path / "migrated.db"
    url = f"sqlite:///{db_file.as_posix()}"

    assert startup.initialize_database(db_file=db_file, database_url=url, log_dir=tmp_path / "logs") is True

    tables = set(inspect(create_engine(url)).get_table_names())
    assert {"emergencies", "audit_log", "alembic_version"} <= tables


def test_migration_failure_is_logged_to_file(tmp_path: Path, monkeypatch) -> None:
    def _boom(*args, **kwargs):  # noqa: ANN002, ANN003
        raise RuntimeError("cannot upgrade")

    monkeypatch.setattr(startup.command, "upgrade", _boom)
    log_dir = tmp_path / "logs"

    assert startup.run_migrations("sqlite:///unused.db", log_dir) is False
    report = (log_dir / "migration_error.log").read_text(encoding="utf-8")
    assert "cannot upgrade" in report


def test_check_startup_prerequisites_handles_write_error(tmp_path: Path, monkeypatch) -> None:
    db_file = tmp_path / "data" / "lifeline.db"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    original_write_text = Path.write_text

    def _failing_write(self: Path, data: str, encoding: str = "utf-8", errors: str | None = None) -> int:
        if self.name == ".write_test":
            raise OSError("permission denied")
        kwargs = {"encoding": encoding}
        if errors is not None:
            kwargs["errors"] = errors
        return original_write_text(self, data, **kwargs)

    monkeypatch.setattr(Path, "write_text", _failing_write)

    assert startup.check_startup_prerequisites(db_file) is False


def test_schema_check_reports_missing_tables(tmp_path: Path) -> None:
    url = f"sqlite:///{(tmp_path / 'empty.db').as_posix()}"
    assert startup.ensure_schema(url) is False
