from fastapi.testclient import TestClient

from services.gateway.app.main import app


def test_gateway_health() -> None:
    c = TestClient(app)
    res = c.get('/health')
    assert res.status_code == 200
    payload = res.json()
    assert payload['status'] == 'ok'
    assert payload['service'] == 'gateway'
    assert payload['version']
    assert payload['revision']


def test_gateway_health_and_metrics_skip_api_key(monkeypatch) -> None:
    monkeypatch.setenv("LIVECANVAS_AUTH_MODE", "api-key")
    monkeypatch.setenv("LIVECANVAS_API_KEYS", "dev-livecanvas-key")
    c = TestClient(app)

    assert c.get("/health").status_code == 200
    assert c.get("/v1/canvas/capabilities").status_code == 200

    metrics = c.get("/metrics")
    assert metrics.status_code == 200
    assert "livecanvas_gateway_http_requests_total" in metrics.text
