from fastapi.testclient import TestClient

from fuel_dispatch.api.dependencies import get_config_client, get_gateway_client
from fuel_dispatch.main import app


def test_health_ok():
    client = TestClient(app)

    resp = client.get("/api/v1/health")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_circuit_breaker_health(gateway_client, config_client):
    app.dependency_overrides[get_gateway_client] = lambda: gateway_client
    app.dependency_overrides[get_config_client] = lambda: config_client
    try:
        resp = TestClient(app).get("/api/v1/health/circuit-breakers")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["circuit_breakers"]["gateway"]["state"] == "closed"


def test_metrics_exposed():
    resp = TestClient(app).get("/metrics")

    assert resp.status_code == 200
    assert "fuel_dispatch_app_info" in resp.text
