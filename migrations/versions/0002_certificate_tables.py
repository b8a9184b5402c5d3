"""certificate templates and issued certificates

Revision ID: 0002_certificate_tables
Revises: 0001_core_schema
Create Date: 2026-09-28 00:10:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_certificate_tables"
down_revision = "0001_core_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "certificate_templates",
        sa.Column("template_id", sa.Integer(), primary_key=True),
        sa.Column("society_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("template_file_path", sa.String(length=255), nullable=False),
        sa.Column("created_by", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["society_id"], ["societies.society_id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["created_by"], ["users.user_id"]),
    )

    op.create_table(
        "certificates",
        sa.Column("certificate_id", sa.Integer(), primary_key=True),
        sa.Column("registration_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer()),
        sa.Column("verification_token", sa.String(length=64), nullable=False),
        sa.Column(
            "status", sa.String(length=20), nullable=False, server_default="ready"
        ),
        sa.Column("file_path", sa.String(length=255)),
        sa.Column("issued_by", sa.Integer()),
        sa.Column("issued_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["registration_id"],
            ["registrations.registration_id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["template_id"],
            ["certificate_templates.template_id"],
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(["issued_by"], ["users.user_id"]),
        # One certificate per registration; the insert path relies on it.
        sa.UniqueConstraint("registration_id", name="uix_certificate_registration"),
        sa.UniqueConstraint("verification_token", name="uix_certificate_token"),
    )


def downgrade() -> None:
    op.drop_table("certificates")
    op.drop_table("certificate_templates")
