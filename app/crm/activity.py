from __future__ import annotations

import logging

from flask import g, has_request_context
from sqlalchemy.orm import Session

from app.crm.errors import InvalidArgument
from app.crm.models import TeamActivity
from app.crm.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10


def record_activity(
    s: Session,
    *,
    action: str,
    actor_name: str,
    subject_name: str | None = None,
    subject_id: str | int | None = None,
    request_id: str | None = None,
) -> TeamActivity:
    """
    Append-only activity helper. Timestamp is assigned here, never by the caller.
    """
    rid = request_id or (getattr(g, "request_id", None) if has_request_context() else None)
    ev = TeamActivity(
        created_at=utcnow(),
        request_id=rid,
        action=action,
        actor_name=actor_name,
        subject_name=subject_name,
        subject_id=str(subject_id) if subject_id is not None else None,
    )
    s.add(ev)
    s.flush()
    return ev


def record_activity_best_effort(s: Session, **kwargs) -> TeamActivity | None:
    """
    Record and commit an activity entry after the triggering mutation has
    already committed. Failures are logged and swallowed.
    """
    try:
        ev = record_activity(s, **kwargs)
        s.commit()
        return ev
    except Exception:
        s.rollback()
        logger.warning(
            "Activity record failed (action=%s request_id=%s)",
            kwargs.get("action"),
            kwargs.get("request_id") or (getattr(g, "request_id", None) if has_request_context() else None),
            exc_info=True,
        )
        return None


def recent_activity(s: Session, limit: int = DEFAULT_RECENT_LIMIT) -> list[TeamActivity]:
    if limit is None or int(limit) <= 0:
        raise InvalidArgument("limit must be a positive integer")
    return (
        s.query(TeamActivity)
        .order_by(TeamActivity.created_at.desc(), TeamActivity.id.desc())
        .limit(int(limit))
        .all()
    )


def activity_to_dict(a: TeamActivity) -> dict:
    return {
        "id": a.id,
        "action": a.action,
        "userName": a.actor_name,
        "customerName": a.subject_name,
        "customerId": a.subject_id,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
    }
