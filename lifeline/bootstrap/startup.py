from __future__ import annotations

import logging
import traceback
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from lifeline.infrastructure.db.engine import get_engine

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "infrastructure" / "db" / "migrations"

logger = logging.getLogger(__name__)


def check_startup_prerequisites(db_file: Path) -> bool:
    if not MIGRATIONS_DIR.exists():
        logger.error("Migrations directory is missing: %s", MIGRATIONS_DIR)
        return False
    try:
        test_file = db_file.parent / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError:
        logger.exception("Database directory is not writable: %s", db_file.parent)
        return False
    return True


def _alembic_config(database_url: str) -> Config:
    cfg = Config()
    # ConfigParser interpolation treats % specially.
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR).replace("%", "%%"))
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def run_migrations(database_url: str, log_dir: Path) -> bool:
    try:
        command.upgrade(_alembic_config(database_url), "head")
        return True
    except Exception:  # noqa: BLE001
        logger.exception("Failed to run migrations")
        try:
            error_path = log_dir / "migration_error.log"
            error_path.parent.mkdir(parents=True, exist_ok=True)
            with error_path.open("a", encoding="utf-8") as handle:
                handle.write("\n--- Migration error ---\n")
                handle.write(f"DB: {database_url}\n")
                handle.write(f"Migrations: {MIGRATIONS_DIR}\n")
                handle.write(traceback.format_exc())
        except OSError:
            logger.exception("Failed to write migration error log")
        return False


def ensure_schema(database_url: str) -> bool:
    inspector = inspect(get_engine(database_url))
    missing = {"emergencies", "audit_log"} - set(inspector.get_table_names())
    if missing:
        logger.error("Database schema incomplete, missing tables: %s", ", ".join(sorted(missing)))
        return False
    return True


def initialize_database(*, db_file: Path | None, database_url: str, log_dir: Path) -> bool:
    # db_file is None for non-SQLite URLs.
    if db_file is not None and not check_startup_prerequisites(db_file):
        return False
    if not run_migrations(database_url, log_dir):
        return False
    return ensure_schema(database_url)
