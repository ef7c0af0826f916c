from __future__ import annotations

from sqlalchemy.orm import Session

from app.crm.activity import record_activity_best_effort
from app.crm.broadcast import ChangeEvent, publish_best_effort
from app.crm.sessions import CurrentUser


def after_mutation(
    s: Session,
    *,
    actor: CurrentUser,
    action: str,
    subject_name: str | None = None,
    subject_id: int | str | None = None,
    event: ChangeEvent | None = None,
) -> None:
    """
    Follow-up for a committed mutation: activity record, then broadcast.
    Both are best-effort; neither can fail or undo the mutation.
    """
    record_activity_best_effort(
        s,
        action=action,
        actor_name=actor.name,
        subject_name=subject_name,
        subject_id=subject_id,
    )
    if event is not None:
        publish_best_effort(event)
