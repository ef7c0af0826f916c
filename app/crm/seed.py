"""
Idempotent seed helpers used by scripts/init_db.py.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from app.crm.invitations import SYSTEM_INVITER, create_invitation, find_active_invitation
from app.crm.models import Invitation, TeamActivity
from app.crm.modules.customers.models import Customer, CustomerNote
from app.crm.utils import normalize_email, utcnow

logger = logging.getLogger(__name__)


def seed_admin_invitation(s: Session, email: str) -> Invitation | None:
    """
    Make sure the bootstrap admin can log in: every login needs a pending
    invitation, so issue a system one unless one is already pending.
    """
    email = normalize_email(email)
    if not email:
        return None
    existing = find_active_invitation(s, email)
    if existing is not None:
        return existing
    inv = create_invitation(s, email, invited_by=SYSTEM_INVITER)
    logger.info("Seeded admin invitation for %s", email)
    return inv


def seed_sample_data(s: Session) -> bool:
    """Load the demo dataset into an empty customers table. Returns whether anything was added."""
    if s.query(Customer.id).first() is not None:
        return False

    now = utcnow()
    customers = [
        Customer(
            first_name="Sarah",
            last_name="Johnson",
            email="sarah.johnson@techcorp.com",
            phone="+1-555-0123",
            company="TechCorp Solutions",
            role="CTO",
            status="active",
            region="north-america",
            last_contact=now - timedelta(days=2),
            last_contact_by="Alex Chen",
        ),
        Customer(
            first_name="Marcus",
            last_name="Rodriguez",
            email="m.rodriguez@globalfinance.com",
            phone="+1-555-0234",
            company="Global Finance Inc",
            role="VP Engineering",
            status="prospect",
            region="north-america",
        ),
        Customer(
            first_name="Emma",
            last_name="Thompson",
            email="emma.thompson@eurotech.eu",
            phone="+44-20-7946-0958",
            company="EuroTech Limited",
            role="Head of Operations",
            status="active",
            region="europe",
            last_contact=now - timedelta(days=7),
            last_contact_by="Sarah Chen",
        ),
        Customer(
            first_name="Chen",
            last_name="Wei",
            email="chen.wei@asiapacific.com",
            phone="+86-138-0013-8000",
            company="Asia Pacific Ventures",
            role="Director",
            status="inactive",
            region="asia-pacific",
            last_contact=now - timedelta(days=45),
            last_contact_by="Marcus Brown",
        ),
    ]
    for c in customers:
        c.created_at = now
        c.updated_at = now
        s.add(c)
    s.flush()

    sarah, marcus, emma = customers[0], customers[1], customers[2]
    for customer, content, author in (
        (sarah, "Had a great call discussing their Q2 expansion plans. They're interested in scaling their infrastructure.", "Alex Chen"),
        (sarah, "Follow-up meeting scheduled for next week to present our enterprise package.", "Sarah Chen"),
        (emma, "Emma mentioned they're evaluating multiple vendors. Need to highlight our European data center advantages.", "Marcus Brown"),
    ):
        s.add(CustomerNote(customer_id=customer.id, content=content, author_name=author, created_at=now))

    for action, actor, subject in (
        ("updated customer", "Sarah Chen", sarah),
        ("added a note to", "Alex Chen", sarah),
        ("created customer", "Marcus Brown", marcus),
        ("exported customer data", "Sarah Chen", None),
    ):
        s.add(
            TeamActivity(
                created_at=now,
                action=action,
                actor_name=actor,
                subject_name=subject.full_name if subject else None,
                subject_id=str(subject.id) if subject else None,
            )
        )
    s.flush()
    logger.info("Seeded sample data: %d customers", len(customers))
    return True
