from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import uvicorn

from lifeline.api.app import create_app
from lifeline.bootstrap.startup import initialize_database
from lifeline.config import DB_FILE, LOG_DIR, settings
from lifeline.container import build_container


def _setup_logging() -> Path:
    log_path = LOG_DIR / "app.log"
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    file_handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)
    return log_path


def _install_exception_hook() -> None:
    def _handle_exception(exc_type, exc, tb) -> None:
        logging.getLogger(__name__).error("Unhandled exception", exc_info=(exc_type, exc, tb))
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _handle_exception


def main() -> int:
    log_path = _setup_logging()
    _install_exception_hook()
    logger = logging.getLogger(__name__)
    logger.info("Starting lifeline (%s), log file %s", settings.environment, log_path)

    db_file = DB_FILE if settings.database_url.startswith("sqlite") else None
    if not initialize_database(db_file=db_file, database_url=settings.database_url, log_dir=LOG_DIR):
        logger.error("Database initialisation failed, see %s", LOG_DIR / "migration_error.log")
        return 1

    if not settings.is_production:
        logger.warning("Non-production mode: OTPs are returned in API responses")

    app = create_app(build_container())
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
