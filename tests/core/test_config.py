"""
Unit Tests for Settings
"""

import pytest

from migraflow.config import Settings


@pytest.mark.unit
def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "MIGRAFLOW_DISPATCH", "HTTP_TIMEOUT_MS", "SMTP_HOST"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.database_url == "sqlite:///./migraflow.db"
    assert settings.dispatch_mode == "asyncio"
    assert settings.http_timeout_ms == 30000
    assert settings.smtp_host is None


@pytest.mark.unit
def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/migraflow")
    monkeypatch.setenv("MIGRAFLOW_DISPATCH", "Celery")
    monkeypatch.setenv("HTTP_TIMEOUT_MS", "5000")
    monkeypatch.setenv("SMTP_USE_TLS", "false")

    settings = Settings.from_env()

    assert settings.database_url == "postgresql://u:p@db/migraflow"
    assert settings.dispatch_mode == "celery"
    assert settings.http_timeout_ms == 5000
    assert settings.smtp_use_tls is False
