"""Tests for the activity recorder."""
import pytest

from app.crm import activity
from app.crm.activity import record_activity, record_activity_best_effort, recent_activity
from app.crm.db import session_scope
from app.crm.errors import InvalidArgument
from app.crm.models import TeamActivity


def _seed(app, n):
    with session_scope(app) as s:
        for i in range(n):
            record_activity(s, action="created customer", actor_name="Ada", subject_name=f"Customer {i}", subject_id=i)


def test_recent_rejects_non_positive_limit(app):
    with session_scope(app) as s:
        with pytest.raises(InvalidArgument):
            recent_activity(s, 0)
        with pytest.raises(InvalidArgument):
            recent_activity(s, -3)


def test_recent_returns_newest_first(app):
    _seed(app, 5)
    with session_scope(app) as s:
        rows = recent_activity(s, 3)
        assert [r.subject_name for r in rows] == ["Customer 4", "Customer 3", "Customer 2"]
        assert len(recent_activity(s, 50)) == 5
        assert len(recent_activity(s)) == 5


def test_subject_is_optional(app):
    with session_scope(app) as s:
        ev = record_activity(s, action="exported customer data", actor_name="Ada")
        assert ev.subject_id is None
        assert ev.created_at is not None


def test_best_effort_swallows_failures(app, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(activity, "record_activity", boom)
    with session_scope(app) as s:
        assert record_activity_best_effort(s, action="created customer", actor_name="Ada") is None
    with session_scope(app) as s:
        assert s.query(TeamActivity).count() == 0


def test_team_activity_api(admin_client, app):
    _seed(app, 4)
    r = admin_client.get("/api/team-activity?limit=2")
    assert r.status_code == 200
    assert [a["customerName"] for a in r.json] == ["Customer 3", "Customer 2"]
    assert r.json[0]["userName"] == "Ada"
    assert r.json[0]["action"] == "created customer"

    assert len(admin_client.get("/api/team-activity").json) == 4
    assert admin_client.get("/api/team-activity?limit=0").status_code == 400
    assert admin_client.get("/api/team-activity?limit=abc").status_code == 400
