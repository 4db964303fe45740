"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against a live store
  - a failing database ping degrades the status instead of erroring
  - No authentication required
"""

from __future__ import annotations

from sqlalchemy.exc import OperationalError

import api.main


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == api.main.VERSION
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_degraded_when_database_is_down(api_client, monkeypatch):
    """A failed ping is reported in components, not as a 500."""

    def _down(engine):
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    monkeypatch.setattr(api.main, "ping", _down)
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["components"]["database"] == "error"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    resp = api_client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
