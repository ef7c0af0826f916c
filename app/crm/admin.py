from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.crm.db import db_session
from app.crm.errors import FieldError, InvalidArgument, ValidationFailed
from app.crm.identity import list_users, require_user, set_user_active, user_to_dict
from app.crm.invitations import create_invitation, invitation_to_dict, list_invitations
from app.crm.sessions import current_user, require_auth

bp = Blueprint("admin", __name__, url_prefix="/api")


@bp.get("/invitations")
@require_auth
def invitations_list():
    s = db_session()
    return jsonify([invitation_to_dict(i) for i in list_invitations(s)])


@bp.post("/invitations")
@require_auth
def invitations_create():
    s = db_session()
    u = current_user()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed([FieldError("body", "Expected a JSON object.")], "Invalid request body")
    try:
        inv = create_invitation(s, payload.get("email"), invited_by=u.email)
        s.commit()
    except Exception:
        s.rollback()
        raise
    current_app.logger.info("Invitation id=%s issued by user_id=%s", inv.id, u.id)
    return jsonify(invitation_to_dict(inv)), 201


@bp.get("/users")
@require_auth
def users_list():
    s = db_session()
    return jsonify([user_to_dict(x) for x in list_users(s)])


@bp.post("/users/<int:user_id>/deactivate")
@require_auth
def users_deactivate(user_id: int):
    s = db_session()
    u = current_user()
    if user_id == u.id:
        raise InvalidArgument("You cannot deactivate your own account")
    try:
        user = require_user(s, user_id)
        set_user_active(s, user, False)
        s.commit()
    except Exception:
        s.rollback()
        raise
    return jsonify(user_to_dict(user))
