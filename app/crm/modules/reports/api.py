from __future__ import annotations

import io

from flask import Blueprint, jsonify, request, send_file

from app.crm.activity import DEFAULT_RECENT_LIMIT, activity_to_dict, recent_activity
from app.crm.changes import after_mutation
from app.crm.db import db_session
from app.crm.errors import InvalidArgument
from app.crm.modules.reports.service import EXPORT_ACTION, customer_analytics, export_customers_csv
from app.crm.sessions import current_user, require_auth

bp = Blueprint("reports", __name__, url_prefix="/api")


def _parse_limit(raw: str | None) -> int:
    if raw is None or raw.strip() == "":
        return DEFAULT_RECENT_LIMIT
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument("limit must be a positive integer")


@bp.get("/team-activity")
@require_auth
def team_activity():
    s = db_session()
    rows = recent_activity(s, _parse_limit(request.args.get("limit")))
    return jsonify([activity_to_dict(a) for a in rows])


@bp.get("/analytics")
@require_auth
def analytics():
    s = db_session()
    return jsonify(customer_analytics(s))


@bp.get("/export")
@require_auth
def export_customers():
    s = db_session()
    u = current_user()
    data, _count = export_customers_csv(s)
    # Reads only; nothing to commit before the activity entry.
    after_mutation(s, actor=u, action=EXPORT_ACTION)
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name="customers.csv",
        max_age=0,
    )
