from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crm.errors import FieldError, NotFound, ValidationFailed
from app.crm.modules.customers.models import CUSTOMER_REGIONS, CUSTOMER_STATUSES, Customer, CustomerNote
from app.crm.utils import clean_text, isoformat, normalize_email, utcnow

# JSON field name -> column name. The wire format is camelCase.
CUSTOMER_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "company": "company",
    "role": "role",
    "status": "status",
    "region": "region",
    "lastContact": "last_contact",
    "lastContactBy": "last_contact_by",
}
REQUIRED_FIELDS = ("firstName", "lastName", "email", "company", "region")


def _parse_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def validate_customer_payload(payload: dict[str, Any], *, partial: bool = False) -> tuple[dict[str, Any], list[FieldError]]:
    """
    Validate a JSON payload against the customer field constraints.
    Returns (column values, errors). With partial=True only supplied keys are checked.
    """
    errs: list[FieldError] = []
    values: dict[str, Any] = {}

    unknown = [k for k in payload.keys() if k not in CUSTOMER_FIELDS and k not in ("id", "createdAt", "updatedAt")]
    for k in unknown:
        errs.append(FieldError(k, "Unknown field."))

    for key, column in CUSTOMER_FIELDS.items():
        if key not in payload:
            if not partial and key in REQUIRED_FIELDS:
                errs.append(FieldError(key, "Required."))
            continue
        raw = payload.get(key)
        if key == "lastContact":
            if raw in (None, ""):
                values[column] = None
                continue
            try:
                values[column] = _parse_datetime(raw)
            except (TypeError, ValueError):
                errs.append(FieldError(key, "Must be an ISO-8601 date/time."))
            continue
        if raw is not None and not isinstance(raw, str):
            errs.append(FieldError(key, "Must be a string."))
            continue
        v = clean_text(raw)
        if key in REQUIRED_FIELDS and v is None:
            errs.append(FieldError(key, "Required."))
            continue
        if key == "email" and v is not None:
            v = normalize_email(v)
            local, _, domain = v.partition("@")
            if not local or "." not in domain:
                errs.append(FieldError(key, "Must be a valid email address."))
                continue
        if key == "status":
            v = (v or "prospect").lower()
            if v not in CUSTOMER_STATUSES:
                errs.append(FieldError(key, f"Must be one of: {', '.join(CUSTOMER_STATUSES)}."))
                continue
        if key == "region" and v is not None:
            v = v.lower()
            if v not in CUSTOMER_REGIONS:
                errs.append(FieldError(key, f"Must be one of: {', '.join(CUSTOMER_REGIONS)}."))
                continue
        values[column] = v

    return values, errs


def list_customers(
    s: Session,
    *,
    status: str | None = None,
    region: str | None = None,
    search: str | None = None,
) -> list[Customer]:
    query = s.query(Customer)
    status = (status or "").strip().lower()
    region = (region or "").strip().lower()
    if status and status != "all":
        query = query.filter(Customer.status == status)
    if region and region != "all":
        query = query.filter(Customer.region == region)
    q = (search or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Customer.first_name.ilike(like),
                Customer.last_name.ilike(like),
                Customer.email.ilike(like),
                Customer.company.ilike(like),
            )
        )
    return query.order_by(Customer.updated_at.desc(), Customer.id.desc()).all()


def get_customer_by_id(s: Session, customer_id: int) -> Customer | None:
    return s.query(Customer).filter(Customer.id == customer_id).one_or_none()


def require_customer(s: Session, customer_id: int) -> Customer:
    c = get_customer_by_id(s, customer_id)
    if c is None:
        raise NotFound("Customer")
    return c


def _email_taken(s: Session, email: str, *, exclude_id: int | None = None) -> bool:
    q = s.query(Customer.id).filter(Customer.email == email)
    if exclude_id is not None:
        q = q.filter(Customer.id != exclude_id)
    return q.first() is not None


def create_customer(s: Session, payload: dict[str, Any]) -> Customer:
    values, errs = validate_customer_payload(payload)
    if not errs and _email_taken(s, values["email"]):
        errs.append(FieldError("email", "A customer with this email already exists."))
    if errs:
        raise ValidationFailed(errs, "Invalid customer data")

    now = utcnow()
    values.setdefault("status", "prospect")
    try:
        with s.begin_nested():
            c = Customer(**values, created_at=now, updated_at=now)
            s.add(c)
            s.flush()  # Force unique constraint check
    except IntegrityError:
        raise ValidationFailed([FieldError("email", "A customer with this email already exists.")], "Invalid customer data")
    return c


def update_customer(s: Session, c: Customer, payload: dict[str, Any]) -> tuple[Customer, list[str]]:
    """Apply a partial update. Returns the customer and the changed column names."""
    values, errs = validate_customer_payload(payload, partial=True)
    if not errs and "email" in values and _email_taken(s, values["email"], exclude_id=c.id):
        errs.append(FieldError("email", "A customer with this email already exists."))
    if errs:
        raise ValidationFailed(errs, "Invalid customer data")

    fields_changed = [col for col, v in values.items() if getattr(c, col) != v]
    for col in fields_changed:
        setattr(c, col, values[col])
    c.updated_at = utcnow()
    try:
        with s.begin_nested():
            s.flush()
    except IntegrityError:
        raise ValidationFailed([FieldError("email", "A customer with this email already exists.")], "Invalid customer data")
    return c, fields_changed


def delete_customer(s: Session, c: Customer) -> None:
    # Notes go first; customer_notes.customer_id is NOT NULL.
    s.query(CustomerNote).filter(CustomerNote.customer_id == c.id).delete(synchronize_session=False)
    s.delete(c)
    s.flush()


def list_notes(s: Session, customer_id: int) -> list[CustomerNote]:
    require_customer(s, customer_id)
    return (
        s.query(CustomerNote)
        .filter(CustomerNote.customer_id == customer_id)
        .order_by(CustomerNote.created_at.desc(), CustomerNote.id.desc())
        .all()
    )


def add_note(s: Session, customer: Customer, *, content: Any, author_name: str) -> CustomerNote:
    text = clean_text(content) if isinstance(content, str) else None
    if not text:
        raise ValidationFailed([FieldError("content", "Note text is required.")], "Invalid note data")
    n = CustomerNote(
        customer_id=customer.id,
        content=text,
        author_name=author_name,
        created_at=utcnow(),
    )
    s.add(n)
    s.flush()
    return n


def customer_to_dict(c: Customer) -> dict[str, Any]:
    return {
        "id": c.id,
        "firstName": c.first_name,
        "lastName": c.last_name,
        "email": c.email,
        "phone": c.phone,
        "company": c.company,
        "role": c.role,
        "status": c.status,
        "region": c.region,
        "lastContact": isoformat(c.last_contact),
        "lastContactBy": c.last_contact_by,
        "createdAt": isoformat(c.created_at),
        "updatedAt": isoformat(c.updated_at),
    }


def note_to_dict(n: CustomerNote) -> dict[str, Any]:
    return {
        "id": n.id,
        "customerId": n.customer_id,
        "content": n.content,
        "authorName": n.author_name,
        "createdAt": isoformat(n.created_at),
    }
