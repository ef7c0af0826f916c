"""
Identity resolver: turns a verified external login into a local User.

Invitation gating:
- Every login needs an unused invitation for the email. There is no open
  registration, and a returning user with no pending invitation is rejected.
- On first login the user row is created and the invitation consumed inside
  one SAVEPOINT, so a user never exists without its invitation being marked
  used. Later logins by an existing user leave the invitation untouched.
- A deactivated user is rejected even when an invitation is pending.
- Two concurrent first logins for the same email: one insert wins. The other
  hits the unique email constraint, finds the invitation already consumed, or
  (on SQLite) is refused the write lock. It then waits for the winner's row
  and continues down the existing-user branch.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.crm.errors import AccountDeactivated, MissingEmail, NoInvitation, NotFound
from app.crm.invitations import consume_invitation, find_active_invitation
from app.crm.models import Invitation, User
from app.crm.utils import clean_text, normalize_email, utcnow

logger = logging.getLogger(__name__)

_LOCK_WAIT_ATTEMPTS = 40
_LOCK_WAIT_SECONDS = 0.05


@dataclass(frozen=True)
class ExternalIdentity:
    """A login assertion already verified by the identity provider."""

    email: str | None
    external_id: str
    display_name: str | None = None
    picture_url: str | None = None


def get_user_by_email(s: Session, email: str) -> User | None:
    return s.query(User).filter(User.email == normalize_email(email)).one_or_none()


def _create_user_consuming(s: Session, identity: ExternalIdentity, email: str, invitation: Invitation) -> User:
    now = utcnow()
    with s.begin_nested():
        user = User(
            email=email,
            name=clean_text(identity.display_name) or "Unknown User",
            external_id=clean_text(identity.external_id),
            profile_picture=clean_text(identity.picture_url),
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        s.add(user)
        s.flush()  # Force unique constraint check
        consume_invitation(s, invitation.id)
    return user


def _is_lock_contention(exc: OperationalError) -> bool:
    return "database is locked" in str(exc.orig)


def _await_concurrent_user(s: Session, email: str) -> User | None:
    """
    SQLite refuses the second writer outright, and the winner's commit waits
    on our read lock. Drop the whole transaction, then poll for the row the
    winner is committing.
    """
    for _ in range(_LOCK_WAIT_ATTEMPTS):
        s.rollback()
        user = get_user_by_email(s, email)
        if user is not None:
            return user
        time.sleep(_LOCK_WAIT_SECONDS)
    return None


def resolve_identity(s: Session, identity: ExternalIdentity) -> User:
    """
    Resolve (and on first login, create) the local user for an external identity.

    Raises MissingEmail, NoInvitation or AccountDeactivated. The caller commits.
    """
    email = normalize_email(identity.email)
    if not email:
        raise MissingEmail("identity assertion carried no email")

    invitation = find_active_invitation(s, email)
    if invitation is None:
        raise NoInvitation(email)

    user = get_user_by_email(s, email)
    if user is None:
        try:
            user = _create_user_consuming(s, identity, email, invitation)
            logger.info("Created user id=%s from invitation id=%s", user.id, invitation.id)
            return user
        except (IntegrityError, NotFound):
            # Lost the race: another login created the user or consumed the invitation.
            s.expire_all()
            user = get_user_by_email(s, email)
        except OperationalError as exc:
            if not _is_lock_contention(exc):
                raise
            user = _await_concurrent_user(s, email)
        if user is None:
            raise NoInvitation(email)
        logger.info("Concurrent first login for user id=%s; continuing as existing user", user.id)

    if not user.is_active:
        raise AccountDeactivated(email)

    _refresh_profile(user, identity)
    return user


def _refresh_profile(user: User, identity: ExternalIdentity) -> None:
    changed = False
    picture = clean_text(identity.picture_url)
    if picture and user.profile_picture != picture:
        user.profile_picture = picture
        changed = True
    external_id = clean_text(identity.external_id)
    if external_id and not user.external_id:
        user.external_id = external_id
        changed = True
    if changed:
        user.updated_at = utcnow()


def list_users(s: Session) -> list[User]:
    return s.query(User).order_by(User.created_at.asc(), User.id.asc()).all()


def require_user(s: Session, user_id: int) -> User:
    user = s.get(User, user_id)
    if user is None:
        raise NotFound("User")
    return user


def set_user_active(s: Session, user: User, active: bool) -> bool:
    """
    Flip is_active. Sessions are left in place: authorize() re-reads the flag on
    every request, so a deactivated user's next request is already rejected.
    Returns whether anything changed. The caller commits.
    """
    if user.is_active == active:
        return False
    user.is_active = active
    user.updated_at = utcnow()
    s.flush()
    logger.info("User id=%s is_active=%s", user.id, active)
    return True


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "profilePicture": user.profile_picture,
        "isActive": user.is_active,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
