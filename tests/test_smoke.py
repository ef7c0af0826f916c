import pytest

from app.crm import create_app


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_login_page_echoes_error(client):
    r = client.get("/login?error=auth_failed")
    assert r.status_code == 200
    assert r.json["error"] == "auth_failed"
    assert r.json["loginUrl"] == "/auth/facebook"


def test_api_requires_auth(client):
    for path in (
        "/api/auth/user",
        "/api/customers",
        "/api/team-activity",
        "/api/analytics",
        "/api/invitations",
        "/api/users",
        "/api/export",
        "/api/events/stream",
    ):
        r = client.get(path)
        assert r.status_code == 401, path
        assert r.json["message"] == "Authentication required"


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert "message" in r.json


def test_facebook_login_redirects_to_provider_with_state(client):
    r = client.get("/auth/facebook")
    assert r.status_code == 302
    assert r.headers["Location"].startswith("https://provider.test/dialog/oauth?")
    with client.session_transaction() as sess:
        assert sess.get("oauth_state")
        assert sess["oauth_state"] in r.headers["Location"]


def test_production_guardrails(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("SECRET_KEY", "strong")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()
