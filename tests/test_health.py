"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version and database fields
  - reachable while the auth API feature flag is off
"""

from __future__ import annotations


def test_health_returns_200(api_client):
    """Health endpoint returns 200 with status, version and database state."""
    client, _ = api_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert "version" in data


def test_health_ignores_feature_flag(disabled_client):
    """The feature gate only covers /api/auth/*, never the health check."""
    client, _ = disabled_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
