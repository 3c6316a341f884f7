"""Tests for settings loading from environment and /run/secrets."""
import pytest

from realmsync.config import settings
from realmsync.config.settings import AppConfig, load_settings

ENV_VARS = (
    "ADMIN_REALM",
    "LOCK_BACKEND",
    "REDIS_URL",
    "REDIS_PASSWORD",
    "METADATA_REQUEST_TIMEOUT",
    "FEDERATION_DEFAULT_REFRESH_MINUTES",
    "FEDERATION_BACKFILL_MAPPERS",
    "SCHEDULER_ENABLED",
    "AUDIT_LOG_DIR",
    "AUDIT_LOG_SIGNING_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    secrets_dir = tmp_path / "secrets"
    secrets_dir.mkdir()
    monkeypatch.setattr(settings, "SECRETS_DIR", secrets_dir)
    return secrets_dir


def test_defaults():
    cfg = load_settings()

    assert cfg.admin_realm == "master"
    assert cfg.lock_backend == "memory"
    assert cfg.federation_default_refresh_minutes == 60
    assert cfg.federation_backfill_mappers is False
    assert cfg.start_scheduler is True
    assert cfg.audit_log_signing_key == ""


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ADMIN_REALM", "root")
    monkeypatch.setenv("LOCK_BACKEND", "Redis")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("METADATA_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("FEDERATION_DEFAULT_REFRESH_MINUTES", "15")
    monkeypatch.setenv("FEDERATION_BACKFILL_MAPPERS", "true")
    monkeypatch.setenv("SCHEDULER_ENABLED", "0")

    cfg = load_settings()

    assert cfg.admin_realm == "root"
    assert cfg.lock_backend == "redis"
    assert cfg.redis_url == "redis://cache:6379/2"
    assert cfg.metadata_request_timeout == 2.5
    assert cfg.federation_default_refresh_minutes == 15
    assert cfg.federation_backfill_mappers is True
    assert cfg.start_scheduler is False


@pytest.mark.parametrize("var, value", [
    ("LOCK_BACKEND", "zookeeper"),
    ("FEDERATION_DEFAULT_REFRESH_MINUTES", "0"),
    ("FEDERATION_DEFAULT_REFRESH_MINUTES", "soon"),
    ("METADATA_REQUEST_TIMEOUT", "-1"),
])
def test_invalid_values_rejected(monkeypatch, var, value):
    monkeypatch.setenv(var, value)

    with pytest.raises(RuntimeError, match=var):
        load_settings()


def test_secret_file_takes_precedence(monkeypatch, clean_env):
    (clean_env / "audit_log_signing_key").write_text("from-file\n")
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "from-env")

    assert load_settings().audit_log_signing_key == "from-file"


def test_secret_falls_back_to_env(monkeypatch):
    monkeypatch.setenv("REDIS_PASSWORD", "hunter2")

    assert load_settings().redis_password == "hunter2"


def test_missing_signing_key_warns(capsys):
    load_settings()

    assert "AUDIT_LOG_SIGNING_KEY not set" in capsys.readouterr().out


def test_redis_url_resolved():
    assert AppConfig(redis_password="pw").redis_url_resolved == "redis://:pw@localhost:6379/0"
    assert AppConfig(redis_url="redis://u:x@h:1/0", redis_password="pw").redis_url_resolved == "redis://u:x@h:1/0"
    assert AppConfig().redis_url_resolved == "redis://localhost:6379/0"
