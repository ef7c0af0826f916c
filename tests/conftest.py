from urllib.parse import urlencode

import pytest

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.identity import ExternalIdentity
from app.crm.invitations import create_invitation
from app.crm.models import Base
from app.crm.oauth import OAuthError

TEST_STATE = "test-oauth-state"


class FakeProvider:
    """Stands in for Facebook: each auth code maps to a pre-registered identity."""

    def __init__(self):
        self.identities: dict[str, ExternalIdentity] = {}

    def register(self, code, *, email, name="Test User", external_id=None, picture_url=None):
        self.identities[code] = ExternalIdentity(
            email=email,
            external_id=external_id or f"fb-{code}",
            display_name=name,
            picture_url=picture_url,
        )

    def authorize_url(self, *, redirect_uri, state):
        return "https://provider.test/dialog/oauth?" + urlencode({"redirect_uri": redirect_uri, "state": state})

    def fetch_identity(self, *, code, redirect_uri):
        try:
            return self.identities[code]
        except KeyError:
            raise OAuthError(f"unknown code {code}")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STREAM_HEARTBEAT_SECONDS", "1")
    for k in ("FACEBOOK_APP_ID", "FACEBOOK_APP_SECRET", "OAUTH_REDIRECT_URI", "SEED_SAMPLE_DATA", "BROADCAST_QUEUE_SIZE"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    app.extensions["identity_provider"] = FakeProvider()
    return app


@pytest.fixture()
def provider(app):
    return app.extensions["identity_provider"]


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def invite(app):
    def _invite(email, invited_by="system"):
        with session_scope(app) as s:
            return create_invitation(s, email, invited_by=invited_by).id

    return _invite


@pytest.fixture()
def login(provider):
    """Drive the OAuth callback for `email`; returns the callback response."""

    def _login(client, email, name="Test User", code=None):
        code = code or f"code-{email}"
        provider.register(code, email=email, name=name)
        with client.session_transaction() as sess:
            sess["oauth_state"] = TEST_STATE
        return client.get(f"/auth/facebook/callback?code={code}&state={TEST_STATE}")

    return _login


@pytest.fixture()
def admin_client(app, invite, login):
    """A client logged in as an invited admin."""
    invite("admin@example.com")
    c = app.test_client()
    r = login(c, "admin@example.com", name="Ada Admin")
    assert r.status_code == 302
    return c
