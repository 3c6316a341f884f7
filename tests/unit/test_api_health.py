"""Tests for health check endpoints."""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from flask import Flask

from realmsync.api.health import bp as health_bp
from realmsync.config import AppConfig


def _app(lock):
    app = Flask(__name__)
    app.config["APP_CONFIG"] = AppConfig(lock_backend="redis")
    scheduler = MagicMock(lock=lock)
    scheduler.scheduled_names.return_value = ["a", "b"]
    app.extensions["realmsync"] = SimpleNamespace(scheduler=scheduler)
    app.register_blueprint(health_bp)
    return app


@pytest.fixture()
def client():
    with _app(SimpleNamespace()).test_client() as client:
        yield client


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.data == b"ok"
    assert response.content_type.startswith("text/plain")


def test_readiness_check(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ready", "lockBackend": "redis", "scheduledTasks": 2}


def test_readiness_degraded_when_lock_backend_down():
    lock = SimpleNamespace(ping=lambda: False)
    with _app(lock).test_client() as client:
        response = client.get("/ready")

    assert response.status_code == 503
    assert response.get_json()["status"] == "degraded"
