from __future__ import annotations

import csv
import io
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.crm.models import TeamActivity
from app.crm.modules.customers.models import Customer, CustomerNote
from app.crm.utils import utcnow

EXPORT_ACTION = "exported customer data"
RECENT_EXPORTS_WINDOW = timedelta(days=30)

EXPORT_COLUMNS = ["First Name", "Last Name", "Email", "Phone", "Company", "Role", "Status", "Region", "Last Contact"]


def customer_analytics(s: Session) -> dict[str, int]:
    total = s.query(func.count(Customer.id)).scalar() or 0
    active = s.query(func.count(Customer.id)).filter(Customer.status == "active").scalar() or 0
    notes = s.query(func.count(CustomerNote.id)).scalar() or 0
    since = utcnow() - RECENT_EXPORTS_WINDOW
    exports = (
        s.query(func.count(TeamActivity.id))
        .filter(TeamActivity.action == EXPORT_ACTION, TeamActivity.created_at >= since)
        .scalar()
        or 0
    )
    return {
        "totalCustomers": int(total),
        "activeCustomers": int(active),
        "totalNotes": int(notes),
        "recentExports": int(exports),
    }


def export_customers_csv(s: Session) -> tuple[bytes, int]:
    """All customers as CSV (newest first). Returns (utf-8 bytes, row count)."""
    rows = s.query(Customer).order_by(Customer.updated_at.desc(), Customer.id.desc()).all()
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(EXPORT_COLUMNS)
    for c in rows:
        w.writerow(
            [
                c.first_name,
                c.last_name,
                c.email,
                c.phone or "",
                c.company,
                c.role or "",
                c.status,
                c.region,
                c.last_contact.isoformat() if c.last_contact else "",
            ]
        )
    return out.getvalue().encode("utf-8"), len(rows)
