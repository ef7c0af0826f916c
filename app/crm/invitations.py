"""
Invitation ledger.

Invitations are the only way in: every login needs a pending one for its email.
The first login of the invited email consumes it, exactly once.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crm.errors import DuplicateInvitation, FieldError, NotFound, ValidationFailed
from app.crm.models import Invitation
from app.crm.utils import normalize_email, utcnow

SYSTEM_INVITER = "system"


def find_active_invitation(s: Session, email: str) -> Invitation | None:
    """Most recent unused invitation for the email, or None."""
    email = normalize_email(email)
    if not email:
        return None
    return (
        s.query(Invitation)
        .filter(Invitation.email == email, Invitation.is_used.is_(False))
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        .first()
    )


def create_invitation(s: Session, email: str, *, invited_by: str = SYSTEM_INVITER) -> Invitation:
    """
    Issue an invitation. Raises DuplicateInvitation if one is already pending for
    this email; the pending record is left as-is.
    """
    # JSON callers can hand over any type.
    email = normalize_email(email) if isinstance(email, str) else ""
    if not email or "@" not in email:
        raise ValidationFailed([FieldError("email", "A valid email address is required.")], "Invalid invitation data")
    if find_active_invitation(s, email) is not None:
        raise DuplicateInvitation(email)

    inv = Invitation(email=email, invited_by=(invited_by or SYSTEM_INVITER).strip(), is_used=False)
    try:
        with s.begin_nested():
            s.add(inv)
            s.flush()
    except IntegrityError:
        # Partial unique index: a concurrent request issued one between our check and insert.
        raise DuplicateInvitation(email)
    return inv


def consume_invitation(s: Session, invitation_id: int) -> Invitation:
    """
    Mark an invitation used. Conditional on is_used = false so that of two
    concurrent consumers exactly one succeeds; the other gets NotFound.
    """
    now = utcnow()
    result = s.execute(
        update(Invitation)
        .where(Invitation.id == invitation_id, Invitation.is_used.is_(False))
        .values(is_used=True, used_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound("Invitation")
    inv = s.get(Invitation, invitation_id)
    if inv is not None:
        s.refresh(inv)
    return inv


def list_invitations(s: Session) -> list[Invitation]:
    return s.query(Invitation).order_by(Invitation.created_at.desc(), Invitation.id.desc()).all()


def invitation_to_dict(inv: Invitation) -> dict:
    return {
        "id": inv.id,
        "email": inv.email,
        "invitedBy": inv.invited_by,
        "isUsed": inv.is_used,
        "createdAt": inv.created_at.isoformat() if inv.created_at else None,
        "usedAt": inv.used_at.isoformat() if inv.used_at else None,
    }
