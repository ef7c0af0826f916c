"""Tests for analytics, CSV export and sample data."""
import csv
import io
from datetime import timedelta

from app.crm.activity import record_activity
from app.crm.db import session_scope
from app.crm.models import TeamActivity
from app.crm.modules.reports.service import EXPORT_ACTION, EXPORT_COLUMNS
from app.crm.seed import seed_admin_invitation, seed_sample_data
from app.crm.utils import utcnow


def test_sample_data_is_idempotent(app):
    with session_scope(app) as s:
        assert seed_sample_data(s) is True
    with session_scope(app) as s:
        assert seed_sample_data(s) is False


def test_admin_invitation_seed(app):
    with session_scope(app) as s:
        first = seed_admin_invitation(s, "Boss@Example.com")
        assert first is not None and first.email == "boss@example.com"
    with session_scope(app) as s:
        again = seed_admin_invitation(s, "boss@example.com")
        assert again.id == first.id
        assert seed_admin_invitation(s, "") is None


def test_admin_seed_reissues_once_spent(app, client, login):
    with session_scope(app) as s:
        first_id = seed_admin_invitation(s, "boss@example.com").id
    assert login(client, "boss@example.com").status_code == 302

    # The admin's login spent it; the next release leaves a fresh one pending.
    with session_scope(app) as s:
        again = seed_admin_invitation(s, "boss@example.com")
        assert again.id != first_id
        assert again.is_used is False


def test_analytics(app, admin_client):
    with session_scope(app) as s:
        seed_sample_data(s)
        # Exports older than the window don't count.
        old = record_activity(s, action=EXPORT_ACTION, actor_name="Old Timer")
        old.created_at = utcnow() - timedelta(days=45)

    r = admin_client.get("/api/analytics")
    assert r.status_code == 200
    assert r.json == {
        "totalCustomers": 4,
        "activeCustomers": 2,
        "totalNotes": 3,
        "recentExports": 1,
    }


def test_export_csv(app, admin_client):
    with session_scope(app) as s:
        seed_sample_data(s)

    r = admin_client.get("/api/export")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "attachment" in r.headers["Content-Disposition"]
    assert "customers.csv" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0] == EXPORT_COLUMNS
    assert len(rows) == 5
    by_email = {row[2]: row for row in rows[1:]}
    marcus = by_email["m.rodriguez@globalfinance.com"]
    assert marcus[0:2] == ["Marcus", "Rodriguez"]
    assert marcus[6:8] == ["prospect", "north-america"]
    assert marcus[8] == ""

    with session_scope(app) as s:
        latest = s.query(TeamActivity).order_by(TeamActivity.id.desc()).first()
        assert latest.action == EXPORT_ACTION
        assert latest.actor_name == "Ada Admin"
        assert latest.subject_id is None

    assert admin_client.get("/api/analytics").json["recentExports"] == 2


def test_export_with_no_customers(admin_client):
    r = admin_client.get("/api/export")
    assert r.status_code == 200
    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows == [EXPORT_COLUMNS]
