"""
Live change feed over Server-Sent Events.

The subscription is opened in the view, before the response starts, so no
event published after the request is accepted can be missed. The generator
runs outside the request context: it holds its own reference to the app and
re-checks the session token before every frame it sends, including the idle
keepalive sent each heartbeat. The stream ends once the session is gone or
the user is deactivated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from flask import Blueprint, Flask, Response, current_app, session

from app.crm.broadcast import Subscription, get_broadcaster
from app.crm.db import session_scope
from app.crm.errors import Unauthenticated
from app.crm.sessions import SESSION_TOKEN_KEY, authorize, current_user, require_auth

logger = logging.getLogger(__name__)

bp = Blueprint("stream", __name__, url_prefix="/api/events")


def _still_authorized(app: Flask, token: str | None) -> bool:
    try:
        with session_scope(app) as s:
            authorize(s, token)
        return True
    except Unauthenticated:
        return False


def _event_stream(app: Flask, sub: Subscription, token: str | None, heartbeat: float) -> Iterator[str]:
    try:
        yield ": connected\n\n"
        while True:
            event = sub.get(timeout=heartbeat)
            if event is None and sub.closed:
                logger.info("Event stream evicted by broadcaster")
                break
            # Every frame, event or keepalive, goes out under a live session.
            if not _still_authorized(app, token):
                logger.info("Event stream closed: session no longer valid")
                break
            yield event.to_sse() if event is not None else ": keepalive\n\n"
    finally:
        sub.close()


@bp.get("/stream")
@require_auth
def events_stream():
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    heartbeat = float(app.config.get("STREAM_HEARTBEAT_SECONDS") or 25)
    sub = get_broadcaster(app).subscribe()
    app.logger.info("Event stream opened for user_id=%s", current_user().id)
    return Response(
        _event_stream(app, sub, session.get(SESSION_TOKEN_KEY), heartbeat),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
