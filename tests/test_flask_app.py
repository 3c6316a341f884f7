"""Tests for the application factory and manager wiring."""
from realmsync.audit import AUDIT_LOG_FILENAME
from realmsync.config import AppConfig
from realmsync.core.manager import RealmManager
from realmsync.core.models import IdentityProviderFederation
from realmsync.core.scheduler import (
    ClusterAwareScheduler,
    InMemoryClusterLock,
    RedisClusterLock,
    federation_task_name,
)
from realmsync.core.store import InMemoryStore
from realmsync.flask_app import build_manager, create_app


def test_build_manager_bootstraps_admin_realm(tmp_path):
    cfg = AppConfig(admin_realm="root", start_scheduler=False, audit_log_dir=str(tmp_path), audit_log_signing_key="k")

    manager = build_manager(cfg)

    assert [r.name for r in manager.list_realms()] == ["root"]
    assert isinstance(manager.scheduler.lock, InMemoryClusterLock)
    assert manager.scheduler.start_timers is False
    # realm.post_create went through the audit trail
    assert (tmp_path / AUDIT_LOG_FILENAME).exists()


def test_build_manager_redis_backend():
    cfg = AppConfig(lock_backend="redis", redis_url="redis://cache:6379/1", audit_log_dir="", start_scheduler=False)

    manager = build_manager(cfg)

    assert isinstance(manager.scheduler.lock, RedisClusterLock)
    assert manager.synchronizer.fetcher.timeout == cfg.metadata_request_timeout


def test_create_app_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("AUDIT_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.delenv("LOCK_BACKEND", raising=False)
    monkeypatch.delenv("ADMIN_REALM", raising=False)

    app = create_app()

    assert app.config["APP_CONFIG"].start_scheduler is False
    with app.test_client() as client:
        assert client.get("/health").status_code == 200
        assert client.get("/admin/realms").get_json()[0]["realm"] == "master"


def test_build_manager_schedules_existing_federations():
    store = InMemoryStore()
    previous = RealmManager(store, scheduler=ClusterAwareScheduler(InMemoryClusterLock(), start_timers=False))
    previous.create_realm("master")
    demo = previous.create_realm("demo")
    federation = previous.create_federation(demo, IdentityProviderFederation(
        alias="edugain", realm_id="", url="https://mds.example.org/entities.json",
    ))
    previous.close()

    manager = build_manager(AppConfig(audit_log_dir="", start_scheduler=False), store=store)
    try:
        assert manager.scheduler.scheduled_names() == [federation_task_name(demo.id, federation.id)]
    finally:
        manager.close()
