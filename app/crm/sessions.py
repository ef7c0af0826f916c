"""
Session guard.

Sessions live in the `sessions` table keyed by sha256(token); the browser only
holds the opaque token inside the signed Flask session cookie. Every request
re-checks the token and the owning user's is_active flag with one local
lookup, so deactivating a user locks out their live sessions immediately.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from functools import wraps
from typing import Any

from flask import current_app, g, request, session
from sqlalchemy.orm import Session

from app.crm.db import db_session
from app.crm.errors import Unauthenticated
from app.crm.models import User, UserSession
from app.crm.utils import utcnow

SESSION_TOKEN_KEY = "session_token"
DEFAULT_TTL = timedelta(days=7)
# Sliding expiry is pushed out at most this often, to keep writes off the hot path.
TOUCH_INTERVAL = timedelta(days=1)


@dataclass(frozen=True)
class CurrentUser:
    """Snapshot of the authenticated user, passed explicitly to services."""

    id: int
    email: str
    name: str
    profile_picture: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(id=user.id, email=user.email, name=user.name, profile_picture=user.profile_picture)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "profilePicture": self.profile_picture,
        }


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def establish(s: Session, user: User, *, ttl: timedelta = DEFAULT_TTL) -> str:
    """Create a session for the user and return the opaque token. Caller commits."""
    token = secrets.token_urlsafe(32)
    now = utcnow()
    s.add(UserSession(token_hash=hash_token(token), user_id=user.id, created_at=now, expires_at=now + ttl))
    s.flush()
    return token


def authorize(s: Session, token: str | None, *, ttl: timedelta | None = None) -> User:
    """
    Resolve a token to an active user or raise Unauthenticated.

    With ttl given, the expiry slides forward (at most once per TOUCH_INTERVAL);
    the caller is responsible for committing that change.
    """
    if not token:
        raise Unauthenticated("missing session token")
    row = s.query(UserSession).filter(UserSession.token_hash == hash_token(token)).one_or_none()
    now = utcnow()
    if row is None:
        raise Unauthenticated("unknown session token")
    if row.expires_at <= now:
        raise Unauthenticated("session expired")
    user = row.user
    if user is None or not user.is_active:
        raise Unauthenticated("user missing or deactivated")
    if ttl is not None and row.expires_at < now + ttl - TOUCH_INTERVAL:
        row.expires_at = now + ttl
    return user


def terminate(s: Session, token: str | None) -> bool:
    """Delete the session if it exists. Idempotent; returns whether a row was removed."""
    if not token:
        return False
    deleted = s.query(UserSession).filter(UserSession.token_hash == hash_token(token)).delete(synchronize_session=False)
    return bool(deleted)


def purge_expired(s: Session) -> int:
    return s.query(UserSession).filter(UserSession.expires_at <= utcnow()).delete(synchronize_session=False)


def session_ttl() -> timedelta:
    return timedelta(days=int(current_app.config.get("SESSION_TTL_DAYS") or 7))


# ---------- Flask glue ----------


def start_session(s: Session, user: User) -> str:
    """Establish a session and bind its token to the response cookie."""
    token = establish(s, user, ttl=session_ttl())
    session.clear()
    session.permanent = True
    session[SESSION_TOKEN_KEY] = token
    return token


def end_session(s: Session) -> bool:
    token = session.get(SESSION_TOKEN_KEY)
    session.clear()
    return terminate(s, token)


def load_current_user() -> None:
    """
    Loads g.auth from the session cookie.
    Also assigns a simple per-request request_id (for activity/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.auth = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    token = session.get(SESSION_TOKEN_KEY)
    if not token:
        return

    try:
        s = db_session()
        user = authorize(s, token, ttl=session_ttl())
        if s.dirty:
            s.commit()
        g.auth = CurrentUser.from_user(user)
    except Unauthenticated as e:
        current_app.logger.info("Rejected session (%s) request_id=%s", e, g.request_id)
        session.pop(SESSION_TOKEN_KEY, None)
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop(SESSION_TOKEN_KEY, None)


def current_user() -> CurrentUser:
    u: CurrentUser | None = getattr(g, "auth", None)
    if u is None:
        raise Unauthenticated("no authenticated user on request")
    return u


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if getattr(g, "auth", None) is None:
            raise Unauthenticated(request.path)
        return fn(*args, **kwargs)

    return wrapped
