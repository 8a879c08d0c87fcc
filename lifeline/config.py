import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, cast

from platformdirs import user_data_dir

APP_NAME = "lifeline"
APP_AUTHOR = "lifeline"

Environment = Literal["development", "production"]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_environment(name: str, default: Environment) -> Environment:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in {"development", "production"}:
        return cast(Environment, raw)
    return default


def _resolve_data_dir() -> Path:
    env_dir = os.getenv("LIFELINE_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


DATA_DIR = _resolve_data_dir()
LOG_DIR = DATA_DIR / "logs"
DB_FILE = Path(os.getenv("LIFELINE_DB_FILE") or (DATA_DIR / "lifeline.db"))

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(parents=True, exist_ok=True)
DB_FILE.parent.mkdir(parents=True, exist_ok=True)


def default_database_url() -> str:
    # SQLite URL uses forward slashes; as_posix() keeps it cross-platform.
    return f"sqlite:///{DB_FILE.as_posix()}"


def _handoff_secret() -> str:
    # Without a configured key, tokens only survive for the life of the process.
    return os.getenv("LIFELINE_HANDOFF_SECRET") or secrets.token_hex(32)


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", default_database_url())
    echo_sql: bool = _env_bool("SQL_ECHO", False)
    environment: Environment = _env_environment("LIFELINE_ENVIRONMENT", "development")
    handoff_secret: str = field(default_factory=_handoff_secret, repr=False)
    emergency_ttl_minutes: int = _env_int("LIFELINE_EMERGENCY_TTL_MINUTES", 120)
    rate_limit_max: int = _env_int("LIFELINE_RATE_LIMIT_MAX", 5)
    rate_limit_window_seconds: int = _env_int("LIFELINE_RATE_LIMIT_WINDOW", 60)
    otp_max_failures: int = _env_int("LIFELINE_OTP_MAX_FAILURES", 5)
    otp_lockout_seconds: int = _env_int("LIFELINE_OTP_LOCKOUT_SECONDS", 900)
    redis_url: str | None = os.getenv("LIFELINE_REDIS_URL") or None
    host: str = os.getenv("LIFELINE_HOST", "127.0.0.1")
    port: int = _env_int("LIFELINE_PORT", 8000)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
