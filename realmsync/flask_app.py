"""Flask application factory.

Builds the realm manager from settings (lock backend, metadata fetcher,
audit trail), makes sure the administration realm exists, and registers the
health and admin blueprints.
"""
from __future__ import annotations
from typing import Optional

from flask import Flask

from realmsync.audit import AuditTrail
from realmsync.config import AppConfig, load_settings
from realmsync.core.events import EventBus
from realmsync.core.federation.fetcher import HttpMetadataFetcher
from realmsync.core.manager import RealmManager
from realmsync.core.scheduler import (
    ClusterAwareScheduler,
    InMemoryClusterLock,
    RedisClusterLock,
)
from realmsync.core.store import Store


# ─────────────────────────────────────────────────────────────────────────────
# Manager wiring
# ─────────────────────────────────────────────────────────────────────────────
def build_manager(cfg: AppConfig, store: Optional[Store] = None) -> RealmManager:
    """Create a RealmManager wired according to ``cfg``.

    Refresh tasks of federations and auto-updating providers already in
    ``store`` are scheduled before the manager is returned.
    """
    if cfg.lock_backend == "redis":
        lock = RedisClusterLock(url=cfg.redis_url_resolved)
    else:
        lock = InMemoryClusterLock()

    events = EventBus()
    if cfg.audit_log_dir:
        events.register(AuditTrail(cfg.audit_log_dir, cfg.audit_log_signing_key))

    manager = RealmManager(
        store,
        scheduler=ClusterAwareScheduler(lock, start_timers=cfg.start_scheduler),
        fetcher=HttpMetadataFetcher(timeout=cfg.metadata_request_timeout),
        events=events,
        admin_realm_name=cfg.admin_realm,
        default_refresh_minutes=cfg.federation_default_refresh_minutes,
        backfill_mappers=cfg.federation_backfill_mappers,
    )
    if not manager.realms.realm_exists(cfg.admin_realm):
        manager.create_realm(cfg.admin_realm)
        print(f"[flask_app] Administration realm '{cfg.admin_realm}' bootstrapped")
    tasks = manager.schedule_all()
    print(f"[flask_app] {len(tasks)} refresh task(s) scheduled")
    return manager


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(manager: Optional[RealmManager] = None, cfg: Optional[AppConfig] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        manager: Pre-built manager (tests); built from settings when omitted
        cfg: Settings; loaded from the environment when omitted
    """
    cfg = cfg or load_settings()
    manager = manager or build_manager(cfg)

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.extensions["realmsync"] = manager

    from realmsync.api import admin, errors, health

    app.register_blueprint(health.bp)
    app.register_blueprint(admin.bp, url_prefix="/admin")
    errors.register_error_handlers(app)

    print(f"[flask_app] Admin API registered at /admin (lock backend: {cfg.lock_backend})")
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000)
