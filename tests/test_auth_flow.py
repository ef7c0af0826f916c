"""End-to-end login/logout through the OAuth callback."""
from urllib.parse import parse_qs, urlsplit

from app.crm.db import session_scope
from app.crm.models import User, UserSession
from app.crm.oauth import FacebookClient, identity_from_profile

FAILED = "/login?error=auth_failed"


def _is_home(location):
    parts = urlsplit(location)
    return parts.path == "/" and not parts.query


def test_invited_login_then_current_user(client, invite, login):
    invite("grace@example.com")
    r = login(client, "grace@example.com", name="Grace Hopper")
    assert r.status_code == 302
    assert _is_home(r.headers["Location"])

    r = client.get("/api/auth/user")
    assert r.status_code == 200
    assert r.json["email"] == "grace@example.com"
    assert r.json["name"] == "Grace Hopper"


def test_uninvited_login_fails_generically(app, client, login):
    r = login(client, "stranger@example.com")
    assert r.status_code == 302
    assert r.headers["Location"].endswith(FAILED)
    assert client.get("/api/auth/user").status_code == 401
    with session_scope(app) as s:
        assert s.query(User).count() == 0


def test_missing_email_fails(client, provider):
    provider.register("no-email", email=None)
    with client.session_transaction() as sess:
        sess["oauth_state"] = "st"
    r = client.get("/auth/facebook/callback?code=no-email&state=st")
    assert r.headers["Location"].endswith(FAILED)


def test_state_mismatch_fails(client, invite, provider):
    invite("grace@example.com")
    provider.register("c1", email="grace@example.com")
    with client.session_transaction() as sess:
        sess["oauth_state"] = "expected"
    r = client.get("/auth/facebook/callback?code=c1&state=forged")
    assert r.headers["Location"].endswith(FAILED)
    assert client.get("/api/auth/user").status_code == 401


def test_provider_error_and_bad_code_fail(client):
    r = client.get("/auth/facebook/callback?error=access_denied")
    assert r.headers["Location"].endswith(FAILED)

    with client.session_transaction() as sess:
        sess["oauth_state"] = "st"
    r = client.get("/auth/facebook/callback?code=unknown&state=st")
    assert r.headers["Location"].endswith(FAILED)


def test_returning_user_needs_a_fresh_invitation(client, invite, login):
    invite("back@example.com")
    assert _is_home(login(client, "back@example.com").headers["Location"])
    client.post("/auth/logout")

    # The first login spent the invitation.
    assert login(client, "back@example.com").headers["Location"].endswith(FAILED)
    assert client.get("/api/auth/user").status_code == 401

    invite("back@example.com")
    assert _is_home(login(client, "back@example.com").headers["Location"])
    assert client.get("/api/auth/user").status_code == 200


def test_logout_is_idempotent(app, client, invite, login):
    invite("grace@example.com")
    login(client, "grace@example.com")
    with session_scope(app) as s:
        assert s.query(UserSession).count() == 1

    for _ in range(2):
        r = client.post("/auth/logout")
        assert r.status_code == 200
        assert r.json == {"message": "Logged out successfully"}

    assert client.get("/api/auth/user").status_code == 401
    with session_scope(app) as s:
        assert s.query(UserSession).count() == 0


def test_logout_without_session(client):
    r = client.post("/auth/logout")
    assert r.status_code == 200


def test_facebook_profile_mapping():
    profile = {
        "id": "1234",
        "name": "Grace Hopper",
        "email": "grace@example.com",
        "picture": {"data": {"url": "https://img.test/g.png"}},
    }
    ident = identity_from_profile(profile)
    assert ident.external_id == "1234"
    assert ident.email == "grace@example.com"
    assert ident.picture_url == "https://img.test/g.png"

    # Facebook omits email when the user declined the permission.
    assert identity_from_profile({"id": "5"}).email is None


def test_facebook_authorize_url():
    fb = FacebookClient(app_id="app-1", app_secret="s3cret")
    url = fb.authorize_url(redirect_uri="http://localhost/auth/facebook/callback", state="xyz")
    query = parse_qs(urlsplit(url).query)
    assert query["client_id"] == ["app-1"]
    assert query["state"] == ["xyz"]
    assert query["scope"] == ["email"]
    assert "s3cret" not in url
