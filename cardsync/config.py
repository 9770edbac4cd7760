# cardsync/config.py
"""Runtime settings read from the environment (and `.env`).

Values are validated once by `load_settings()`; the rest of the code only
receives the resulting `Settings` object.
"""
import os
from typing import Optional
from urllib.parse import urlparse

from apscheduler.triggers.cron import CronTrigger
from apscheduler.util import astimezone
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError

load_dotenv()

DEFAULT_TARGET_URL = "https://www.game.es/buscar/pokemon%20tcg"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes"}


def normalize_database_url(url: str) -> str:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


class Settings(BaseModel):
    target_url: str = DEFAULT_TARGET_URL
    source_name: str = "gamestore"
    source_label: str = "GAME"

    cron_schedule: str = "0 */6 * * *"
    scheduler_timezone: str = "UTC"
    sync_on_startup: bool = False

    database_url: str = "sqlite:///./cardsync.db"
    db_pool_size: int = Field(5, ge=1)
    db_max_overflow: int = Field(10, ge=0)

    discord_webhook_url: Optional[str] = None
    discord_username: str = "Pokemon TCG Bot"

    headless: bool = True
    navigation_timeout_ms: int = Field(20000, gt=0)
    settle_seconds: float = Field(3.0, ge=0)
    user_agent: str = DEFAULT_USER_AGENT

    retain_failed_batch: bool = False

    host: str = "0.0.0.0"
    port: int = Field(3000, gt=0, le=65535)

    @field_validator("cron_schedule")
    @classmethod
    def _check_cron(cls, value: str) -> str:
        try:
            CronTrigger.from_crontab(value)
        except ValueError as e:
            raise ValueError(f"invalid cron schedule {value!r}: {e}") from e
        return value

    @field_validator("scheduler_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            astimezone(value)
        except (KeyError, ValueError) as e:
            raise ValueError(f"unknown timezone {value!r}") from e
        return value

    @field_validator("target_url")
    @classmethod
    def _check_target_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"target url must be absolute http(s), got {value!r}")
        return value

    @field_validator("database_url")
    @classmethod
    def _normalize_database_url(cls, value: str) -> str:
        return normalize_database_url(value)

    @property
    def site_origin(self) -> str:
        parsed = urlparse(self.target_url)
        return f"{parsed.scheme}://{parsed.netloc}"


def load_settings() -> Settings:
    raw = {
        "target_url": os.getenv("TARGET_URL"),
        "source_name": os.getenv("SOURCE_NAME"),
        "source_label": os.getenv("SOURCE_LABEL"),
        "cron_schedule": os.getenv("CRON_SCHEDULE"),
        "scheduler_timezone": os.getenv("SCHEDULER_TIMEZONE"),
        "sync_on_startup": _env_bool("SYNC_ON_STARTUP"),
        "database_url": os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL"),
        "db_pool_size": os.getenv("DB_POOL_SIZE"),
        "db_max_overflow": os.getenv("DB_MAX_OVERFLOW"),
        "discord_webhook_url": os.getenv("DISCORD_WEBHOOK_URL") or None,
        "discord_username": os.getenv("DISCORD_USERNAME"),
        "headless": _env_bool("HEADLESS", True),
        "navigation_timeout_ms": os.getenv("NAVIGATION_TIMEOUT_MS"),
        "settle_seconds": os.getenv("SETTLE_SECONDS"),
        "user_agent": os.getenv("USER_AGENT"),
        "retain_failed_batch": _env_bool("SYNC_RETAIN_FAILED_BATCH"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    # unset variables fall back to the model defaults
    values = {k: v for k, v in raw.items() if v is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        errors = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Configuration validation failed: {errors}") from e
