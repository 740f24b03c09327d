from fastapi.testclient import TestClient

from tollgate.main import app


def test_health_endpoint_returns_ok():
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "time" in body


def test_package_exposes_app_lazily():
    import tollgate

    assert tollgate.app is app
