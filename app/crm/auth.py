from __future__ import annotations

from flask import Blueprint, current_app, g, redirect, request, url_for

from app.crm.db import db_session
from app.crm.errors import LoginRejected
from app.crm.identity import resolve_identity
from app.crm.oauth import IdentityProvider, OAuthError, check_state, issue_state
from app.crm.sessions import current_user, end_session, require_auth, start_session

bp = Blueprint("auth", __name__)

LOGIN_FAILED_URL = "/login?error=auth_failed"


def _provider() -> IdentityProvider:
    provider = current_app.extensions.get("identity_provider")
    if provider is None:
        raise RuntimeError("identity_provider not configured")
    return provider


def _redirect_uri() -> str:
    configured = (current_app.config.get("OAUTH_REDIRECT_URI") or "").strip()
    return configured or url_for("auth.facebook_callback", _external=True)


def _login_failed(reason: str):
    current_app.logger.info("Login failed: %s (request_id=%s)", reason, getattr(g, "request_id", None))
    return redirect(LOGIN_FAILED_URL)


@bp.get("/auth/facebook")
def facebook_login():
    state = issue_state()
    return redirect(_provider().authorize_url(redirect_uri=_redirect_uri(), state=state))


@bp.get("/auth/facebook/callback")
def facebook_callback():
    if request.args.get("error"):
        return _login_failed(f"provider error: {request.args.get('error')}")
    if not check_state(request.args.get("state")):
        return _login_failed("state mismatch")
    code = (request.args.get("code") or "").strip()
    if not code:
        return _login_failed("missing code")

    try:
        identity = _provider().fetch_identity(code=code, redirect_uri=_redirect_uri())
    except OAuthError as e:
        current_app.logger.warning("Identity provider error: %s", e)
        return _login_failed("provider exchange failed")

    s = db_session()
    try:
        user = resolve_identity(s, identity)
        start_session(s, user)
        s.commit()
    except LoginRejected as e:
        s.rollback()
        # Same redirect for every rejection; the reason only goes to the log.
        return _login_failed(f"{type(e).__name__}: {e}")
    except Exception:
        s.rollback()
        current_app.logger.exception("Login callback crashed (request_id=%s)", getattr(g, "request_id", None))
        return _login_failed("internal error")

    current_app.logger.info("Login ok user_id=%s", user.id)
    return redirect("/")


@bp.post("/auth/logout")
def logout():
    s = db_session()
    removed = end_session(s)
    s.commit()
    if removed:
        current_app.logger.info("Logout (request_id=%s)", getattr(g, "request_id", None))
    return {"message": "Logged out successfully"}


@bp.get("/api/auth/user")
@require_auth
def auth_user():
    return current_user().to_dict()
