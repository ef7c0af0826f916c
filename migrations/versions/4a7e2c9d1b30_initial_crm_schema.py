"""initial crm schema: users, invitations, sessions, activity, customers

Revision ID: 4a7e2c9d1b30
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "4a7e2c9d1b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("external_id", sa.String(length=128), nullable=True),
            sa.Column("profile_picture", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint("email", name="uq_users_email"),
            sa.UniqueConstraint("external_id", name="uq_users_external_id"),
        )

    if "invitations" not in existing_tables:
        op.create_table(
            "invitations",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("invited_by", sa.Text(), nullable=False),
            sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("used_at", sa.DateTime(timezone=False), nullable=True),
        )
        # At most one unused invitation per email.
        op.create_index(
            "uq_invitations_email_unused",
            "invitations",
            ["email"],
            unique=True,
            sqlite_where=sa.text("is_used = 0"),
            postgresql_where=sa.text("is_used = false"),
        )
        op.create_index("idx_invitations_email", "invitations", ["email", "created_at"])

    if "sessions" not in existing_tables:
        op.create_table(
            "sessions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("token_hash", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("expires_at", sa.DateTime(timezone=False), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("token_hash", name="uq_sessions_token_hash"),
        )
        op.create_index("idx_sessions_user_id", "sessions", ["user_id"])
        op.create_index("idx_sessions_expires_at", "sessions", ["expires_at"])

    if "team_activity" not in existing_tables:
        op.create_table(
            "team_activity",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("actor_name", sa.Text(), nullable=False),
            sa.Column("subject_name", sa.Text(), nullable=True),
            sa.Column("subject_id", sa.String(length=128), nullable=True),
        )
        op.create_index("idx_team_activity_created_at", "team_activity", ["created_at"])

    if "customers" not in existing_tables:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("first_name", sa.Text(), nullable=False),
            sa.Column("last_name", sa.Text(), nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("phone", sa.Text(), nullable=True),
            sa.Column("company", sa.Text(), nullable=False),
            sa.Column("role", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="prospect"),
            sa.Column("region", sa.String(length=64), nullable=False),
            sa.Column("last_contact", sa.DateTime(timezone=False), nullable=True),
            sa.Column("last_contact_by", sa.Text(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("email", name="uq_customers_email"),
        )
        op.create_index("idx_customers_status", "customers", ["status"])
        op.create_index("idx_customers_region", "customers", ["region"])
        op.create_index("idx_customers_updated_at", "customers", ["updated_at"])

    if "customer_notes" not in existing_tables:
        op.create_table(
            "customer_notes",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("author_name", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_customer_notes_customer_id", "customer_notes", ["customer_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_customer_notes_customer_id", table_name="customer_notes")
    op.drop_table("customer_notes")

    op.drop_index("idx_customers_updated_at", table_name="customers")
    op.drop_index("idx_customers_region", table_name="customers")
    op.drop_index("idx_customers_status", table_name="customers")
    op.drop_table("customers")

    op.drop_index("idx_team_activity_created_at", table_name="team_activity")
    op.drop_table("team_activity")

    op.drop_index("idx_sessions_expires_at", table_name="sessions")
    op.drop_index("idx_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")

    op.drop_index("idx_invitations_email", table_name="invitations")
    op.drop_index("uq_invitations_email_unused", table_name="invitations")
    op.drop_table("invitations")

    op.drop_table("users")
