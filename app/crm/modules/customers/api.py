from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from app.crm.broadcast import ChangeEvent, EventType
from app.crm.changes import after_mutation
from app.crm.db import db_session
from app.crm.errors import FieldError, ValidationFailed
from app.crm.modules.customers.service import (
    add_note,
    create_customer,
    customer_to_dict,
    delete_customer,
    list_customers,
    list_notes,
    note_to_dict,
    require_customer,
    update_customer,
)
from app.crm.sessions import current_user, require_auth

bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed([FieldError("body", "Expected a JSON object.")], "Invalid request body")
    return payload


@bp.get("")
@require_auth
def customers_list():
    s = db_session()
    rows = list_customers(
        s,
        status=request.args.get("status"),
        region=request.args.get("region"),
        search=request.args.get("search"),
    )
    return jsonify([customer_to_dict(c) for c in rows])


@bp.get("/<int:customer_id>")
@require_auth
def customer_detail(customer_id: int):
    s = db_session()
    return jsonify(customer_to_dict(require_customer(s, customer_id)))


@bp.post("")
@require_auth
def customer_create():
    s = db_session()
    u = current_user()
    payload = _json_body()
    try:
        c = create_customer(s, payload)
        s.commit()
    except Exception:
        s.rollback()
        raise

    data = customer_to_dict(c)
    after_mutation(
        s,
        actor=u,
        action="created customer",
        subject_name=c.full_name,
        subject_id=c.id,
        event=ChangeEvent(EventType.CUSTOMER_CREATED, data),
    )
    return jsonify(data), 201


@bp.put("/<int:customer_id>")
@bp.patch("/<int:customer_id>")
@require_auth
def customer_update(customer_id: int):
    s = db_session()
    u = current_user()
    payload = _json_body()
    try:
        c = require_customer(s, customer_id)
        c, _changed = update_customer(s, c, payload)
        s.commit()
    except Exception:
        s.rollback()
        raise

    data = customer_to_dict(c)
    after_mutation(
        s,
        actor=u,
        action="updated customer",
        subject_name=c.full_name,
        subject_id=c.id,
        event=ChangeEvent(EventType.CUSTOMER_UPDATED, data),
    )
    return jsonify(data)


@bp.delete("/<int:customer_id>")
@require_auth
def customer_delete(customer_id: int):
    s = db_session()
    u = current_user()
    try:
        c = require_customer(s, customer_id)
        name = c.full_name
        delete_customer(s, c)
        s.commit()
    except Exception:
        s.rollback()
        raise

    after_mutation(
        s,
        actor=u,
        action="deleted customer",
        subject_name=name,
        subject_id=customer_id,
        event=ChangeEvent(EventType.CUSTOMER_DELETED, {"id": customer_id}),
    )
    return "", 204


@bp.get("/<int:customer_id>/notes")
@require_auth
def notes_list(customer_id: int):
    s = db_session()
    return jsonify([note_to_dict(n) for n in list_notes(s, customer_id)])


@bp.post("/<int:customer_id>/notes")
@require_auth
def note_create(customer_id: int):
    s = db_session()
    u = current_user()
    payload = _json_body()
    try:
        c = require_customer(s, customer_id)
        n = add_note(s, c, content=payload.get("content"), author_name=u.name)
        s.commit()
    except Exception:
        s.rollback()
        raise

    data = note_to_dict(n)
    after_mutation(
        s,
        actor=u,
        action="added a note to",
        subject_name=c.full_name,
        subject_id=c.id,
        event=ChangeEvent(EventType.NOTE_CREATED, data),
    )
    return jsonify(data), 201
