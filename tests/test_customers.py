"""Tests for customers and notes, including their activity and change events."""
from app.crm.broadcast import EventType
from app.crm import activity
from app.crm.db import session_scope
from app.crm.models import TeamActivity
from app.crm.modules.customers.models import Customer, CustomerNote


def _payload(**overrides):
    data = {
        "firstName": "Sarah",
        "lastName": "Johnson",
        "email": "sarah.johnson@techcorp.com",
        "phone": "+1-555-0123",
        "company": "TechCorp Solutions",
        "role": "CTO",
        "status": "active",
        "region": "north-america",
    }
    data.update(overrides)
    return data


def _create(client, **overrides):
    r = client.post("/api/customers", json=_payload(**overrides))
    assert r.status_code == 201, r.json
    return r.json


def _activities(app):
    with session_scope(app) as s:
        return [(a.action, a.actor_name, a.subject_name) for a in s.query(TeamActivity).order_by(TeamActivity.id).all()]


def test_customer_crud(admin_client):
    created = _create(admin_client)
    assert created["status"] == "active"
    assert created["lastContact"] is None
    cid = created["id"]

    r = admin_client.get(f"/api/customers/{cid}")
    assert r.status_code == 200
    assert r.json["email"] == "sarah.johnson@techcorp.com"

    r = admin_client.put(f"/api/customers/{cid}", json={"status": "inactive", "lastContact": "2025-01-02T03:04:05Z"})
    assert r.status_code == 200
    assert r.json["status"] == "inactive"
    assert r.json["lastContact"] == "2025-01-02T03:04:05"
    assert r.json["firstName"] == "Sarah"

    r = admin_client.delete(f"/api/customers/{cid}")
    assert r.status_code == 204
    assert admin_client.get(f"/api/customers/{cid}").status_code == 404
    assert admin_client.delete(f"/api/customers/{cid}").status_code == 404


def test_status_defaults_to_prospect(admin_client):
    payload = _payload()
    del payload["status"]
    r = admin_client.post("/api/customers", json=payload)
    assert r.status_code == 201
    assert r.json["status"] == "prospect"


def test_validation_errors(admin_client):
    r = admin_client.post("/api/customers", json={"firstName": "Only"})
    assert r.status_code == 400
    fields = {e["field"] for e in r.json["errors"]}
    assert {"lastName", "email", "company", "region"} <= fields

    r = admin_client.post("/api/customers", json=_payload(region="mars"))
    assert r.status_code == 400
    assert r.json["errors"][0]["field"] == "region"

    r = admin_client.post("/api/customers", json=_payload(email="nope"))
    assert r.status_code == 400

    r = admin_client.post("/api/customers", data="not json", content_type="application/json")
    assert r.status_code == 400


def test_duplicate_customer_email(admin_client):
    _create(admin_client)
    r = admin_client.post("/api/customers", json=_payload(firstName="Other"))
    assert r.status_code == 400
    assert r.json["errors"][0]["field"] == "email"

    other = _create(admin_client, email="other@example.com")
    r = admin_client.put(f"/api/customers/{other['id']}", json={"email": "SARAH.johnson@techcorp.com"})
    assert r.status_code == 400


def test_list_filters_and_search(admin_client):
    _create(admin_client)
    _create(admin_client, firstName="Emma", lastName="Thompson", email="emma@eurotech.eu", company="EuroTech", status="prospect", region="europe")

    assert len(admin_client.get("/api/customers").json) == 2
    assert len(admin_client.get("/api/customers?status=all&region=all").json) == 2
    assert [c["firstName"] for c in admin_client.get("/api/customers?region=europe").json] == ["Emma"]
    assert [c["firstName"] for c in admin_client.get("/api/customers?status=active").json] == ["Sarah"]
    assert [c["firstName"] for c in admin_client.get("/api/customers?search=EUROTECH").json] == ["Emma"]
    assert admin_client.get("/api/customers?search=zzz").json == []


def test_notes(app, admin_client):
    cid = _create(admin_client)["id"]
    r = admin_client.post(f"/api/customers/{cid}/notes", json={"content": "First call went well."})
    assert r.status_code == 201
    assert r.json["authorName"] == "Ada Admin"
    admin_client.post(f"/api/customers/{cid}/notes", json={"content": "Follow-up booked."})

    r = admin_client.get(f"/api/customers/{cid}/notes")
    assert [n["content"] for n in r.json] == ["Follow-up booked.", "First call went well."]

    assert admin_client.post(f"/api/customers/{cid}/notes", json={"content": "  "}).status_code == 400
    assert admin_client.get("/api/customers/9999/notes").status_code == 404
    assert admin_client.post("/api/customers/9999/notes", json={"content": "x"}).status_code == 404

    # Deleting the customer removes its notes.
    admin_client.delete(f"/api/customers/{cid}")
    with session_scope(app) as s:
        assert s.query(CustomerNote).count() == 0


def test_mutations_record_activity(app, admin_client):
    cid = _create(admin_client)["id"]
    admin_client.put(f"/api/customers/{cid}", json={"role": "CEO"})
    admin_client.post(f"/api/customers/{cid}/notes", json={"content": "hi"})
    admin_client.delete(f"/api/customers/{cid}")

    assert _activities(app) == [
        ("created customer", "Ada Admin", "Sarah Johnson"),
        ("updated customer", "Ada Admin", "Sarah Johnson"),
        ("added a note to", "Ada Admin", "Sarah Johnson"),
        ("deleted customer", "Ada Admin", "Sarah Johnson"),
    ]


def test_mutations_publish_change_events(app, admin_client):
    sub = app.extensions["broadcaster"].subscribe()
    try:
        cid = _create(admin_client)["id"]
        admin_client.put(f"/api/customers/{cid}", json={"role": "CEO"})
        note_id = admin_client.post(f"/api/customers/{cid}/notes", json={"content": "hi"}).json["id"]
        admin_client.delete(f"/api/customers/{cid}")

        events = [sub.get(timeout=1) for _ in range(4)]
        assert [e.type for e in events] == [
            EventType.CUSTOMER_CREATED,
            EventType.CUSTOMER_UPDATED,
            EventType.NOTE_CREATED,
            EventType.CUSTOMER_DELETED,
        ]
        assert events[0].payload["id"] == cid
        assert events[1].payload["role"] == "CEO"
        assert events[2].payload["id"] == note_id
        assert events[3].payload == {"id": cid}
        assert sub.get(timeout=0) is None
    finally:
        sub.close()


def test_failed_mutation_publishes_nothing(app, admin_client):
    sub = app.extensions["broadcaster"].subscribe()
    try:
        admin_client.post("/api/customers", json={"firstName": "Only"})
        admin_client.put("/api/customers/9999", json={"role": "x"})
        assert sub.get(timeout=0) is None
        assert _activities(app) == []
    finally:
        sub.close()


def test_broadcast_failure_does_not_fail_mutation(app, admin_client, monkeypatch):
    def boom(event):
        raise RuntimeError("broadcaster down")

    monkeypatch.setattr(app.extensions["broadcaster"], "publish", boom)
    created = _create(admin_client)
    with session_scope(app) as s:
        assert s.get(Customer, created["id"]) is not None
    assert _activities(app) == [("created customer", "Ada Admin", "Sarah Johnson")]


def test_activity_failure_does_not_fail_mutation(app, admin_client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("activity table locked")

    monkeypatch.setattr(activity, "record_activity", boom)
    sub = app.extensions["broadcaster"].subscribe()
    try:
        created = _create(admin_client)
        with session_scope(app) as s:
            assert s.get(Customer, created["id"]) is not None
        # The broadcast still goes out.
        assert sub.get(timeout=1).type == EventType.CUSTOMER_CREATED
    finally:
        sub.close()
