"""users, societies, events, registrations and attendance

Revision ID: 0001_core_schema
Revises:
Create Date: 2026-09-28 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_core_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column(
            "role", sa.String(length=20), nullable=False, server_default="student"
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_users_email_lower", "users", [sa.text("lower(email)")], unique=True
    )

    op.create_table(
        "societies",
        sa.Column("society_id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "society_memberships",
        sa.Column("membership_id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("society_id", sa.Integer(), nullable=False),
        sa.Column(
            "is_core", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["society_id"], ["societies.society_id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint(
            "user_id", "society_id", name="uix_society_membership_user_society"
        ),
    )

    op.create_table(
        "events",
        sa.Column("event_id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("event_date", sa.Date()),
        sa.Column("venue", sa.String(length=255)),
        sa.Column(
            "is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("base_fee_amount", sa.Numeric(10, 2)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["society_id"], ["societies.society_id"], ondelete="CASCADE"
        ),
    )

    op.create_table(
        "registrations",
        sa.Column("registration_id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            nullable=False,
            server_default="registered",
        ),
        sa.Column(
            "payment_required",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("fee_amount", sa.Numeric(10, 2)),
        sa.Column(
            "payment_status",
            sa.String(length=20),
            nullable=False,
            server_default="not_required",
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["event_id"], ["events.event_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_registrations_event_status", "registrations", ["event_id", "status"]
    )

    op.create_table(
        "attendance",
        sa.Column("attendance_id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("attendance_status", sa.String(length=20), nullable=False),
        sa.Column("marked_by", sa.Integer()),
        sa.Column("marked_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["event_id"], ["events.event_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["marked_by"], ["users.user_id"]),
        sa.UniqueConstraint("event_id", "user_id", name="uix_attendance_event_user"),
    )


def downgrade() -> None:
    op.drop_table("attendance")
    op.drop_index("ix_registrations_event_status", table_name="registrations")
    op.drop_table("registrations")
    op.drop_table("events")
    op.drop_table("society_memberships")
    op.drop_table("societies")
    op.drop_index("ix_users_email_lower", table_name="users")
    op.drop_table("users")
