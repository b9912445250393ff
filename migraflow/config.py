"""
Runtime configuration for migraflow.

All settings come from environment variables (a local .env file is loaded
first with python-dotenv).

Environment Variables:
    DATABASE_URL: SQLAlchemy URL for workflow/execution storage
    REDIS_URL: Celery broker and result backend
    LOG_LEVEL / JSON_LOGS / LOG_FILE: logging (see core.logging_config)
    MIGRAFLOW_DISPATCH: "asyncio" (in-process) or "celery"
    HTTP_TIMEOUT_MS: default timeout for HTTP actions
    SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASSWORD / SMTP_SENDER / SMTP_USE_TLS
    PAGERDUTY_EVENTS_URL: PagerDuty Events API v2 endpoint
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./migraflow.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[str] = None
    dispatch_mode: str = "asyncio"
    http_timeout_ms: int = 30000
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_sender: str = "workflows@localhost"
    smtp_use_tls: bool = True
    pagerduty_events_url: str = "https://events.pagerduty.com/v2/enqueue"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        database_url = os.getenv("DATABASE_URL", cls.database_url)
        if database_url.startswith("postgres://"):
            # Some hosts hand out postgres:// which SQLAlchemy no longer accepts
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        return cls(
            database_url=database_url,
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            json_logs=_env_bool("JSON_LOGS", cls.json_logs),
            log_file=os.getenv("LOG_FILE") or None,
            dispatch_mode=os.getenv("MIGRAFLOW_DISPATCH", cls.dispatch_mode).lower(),
            http_timeout_ms=int(os.getenv("HTTP_TIMEOUT_MS", str(cls.http_timeout_ms))),
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=int(os.getenv("SMTP_PORT", str(cls.smtp_port))),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            smtp_sender=os.getenv("SMTP_SENDER", cls.smtp_sender),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", cls.smtp_use_tls),
            pagerduty_events_url=os.getenv("PAGERDUTY_EVENTS_URL", cls.pagerduty_events_url),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings.from_env()
