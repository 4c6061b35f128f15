from labkeeper.main import app, _depends_on
from labkeeper.auth import get_current_user

PUBLIC_PATHS = {
    "/api/auth/login",
    "/api/auth/register",
    "/metrics",
}


def test_all_routes_protected():
    for route in app.routes:
        path = getattr(route, 'path', '')
        if not path.startswith('/api'):
            continue
        if path in PUBLIC_PATHS:
            continue
        if not hasattr(route, 'dependant'):
            continue
        assert _depends_on(route.dependant, get_current_user), f"{path} missing authentication"


def test_missing_token_is_rejected(client):
    resp = client.get("/api/lab/1/inventory")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Authentication required"


def test_garbage_token_is_rejected(client):
    resp = client.get("/api/items", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


def test_metrics_exposed(client):
    client.get("/api/items")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "request_count" in resp.text
