"""create routing tables

Revision ID: 5b1e0c7a9d21
Revises:
Create Date: 2026-10-19 09:12:44.318205

Catalog parts, hubs, quotes, jobs with their timeline, and the payment
ledger. Tables that Base.metadata.create_all() already made are skipped, so
the migration is safe on databases created before Alembic was wired in.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '5b1e0c7a9d21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("catalog_parts"):
        op.create_table(
            "catalog_parts",
            sa.Column("id", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(), nullable=False),
            sa.Column("process", sa.String(), nullable=True),
            sa.Column("material", sa.String(), nullable=True),
            sa.Column("base_price", sa.Float(), nullable=False),
            sa.Column("lead_time_days", sa.Integer(), nullable=True),
            sa.Column("manufacturability", sa.Integer(), nullable=True),
            sa.Column("materials", sa.JSON(), nullable=True),
            sa.Column("parameters", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists("hubs"):
        op.create_table(
            "hubs",
            sa.Column("id", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("capabilities", sa.JSON(), nullable=True),
            sa.Column("materials", sa.JSON(), nullable=True),
            sa.Column("rating", sa.Float(), nullable=True),
            sa.Column("current_load", sa.Float(), nullable=True),
            sa.Column("base_price", sa.Float(), nullable=True),
            sa.Column("avg_lead_time", sa.Integer(), nullable=True),
            sa.Column("certified", sa.Boolean(), nullable=True),
            sa.Column("completed_jobs", sa.Integer(), nullable=True),
            sa.Column("location", sa.JSON(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists("quotes"):
        op.create_table(
            "quotes",
            sa.Column("id", sa.String(), nullable=False),
            sa.Column("customer_id", sa.String(), nullable=True),
            sa.Column("part_id", sa.String(), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("material", sa.String(), nullable=False),
            sa.Column("material_fallback", sa.Boolean(), nullable=True),
            sa.Column("parameters", sa.JSON(), nullable=True),
            sa.Column("manufacturability", sa.Integer(), nullable=True),
            sa.Column("base_price", sa.Float(), nullable=False),
            sa.Column("material_multiplier", sa.Float(), nullable=True),
            sa.Column("volume_discount", sa.Float(), nullable=True),
            sa.Column("unit_price", sa.Float(), nullable=False),
            sa.Column("subtotal", sa.Float(), nullable=False),
            sa.Column("platform_fee", sa.Float(), nullable=False),
            sa.Column("total_price", sa.Float(), nullable=False),
            sa.Column("currency", sa.String(), nullable=False),
            sa.Column("lead_time_days", sa.Integer(), nullable=False),
            sa.Column("valid_until", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["part_id"], ["catalog_parts.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_quotes_customer_id", "quotes", ["customer_id"])

    if not _table_exists("jobs"):
        op.create_table(
            "jobs",
            sa.Column("id", sa.String(), nullable=False),
            sa.Column("customer_id", sa.String(), nullable=False),
            sa.Column("quote_id", sa.String(), nullable=True),
            sa.Column("hub_id", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("payment_status", sa.String(), nullable=False),
            sa.Column("payment_reference", sa.String(), nullable=True),
            sa.Column("payment_transaction_id", sa.String(), nullable=True),
            sa.Column("payment_amount", sa.Float(), nullable=True),
            sa.Column("payment_currency", sa.String(), nullable=True),
            sa.Column("payment_verified_at", sa.DateTime(), nullable=True),
            sa.Column("estimated_completion", sa.DateTime(), nullable=True),
            sa.Column("tracking_number", sa.String(), nullable=True),
            sa.Column("design_location", sa.String(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"]),
            sa.ForeignKeyConstraint(["hub_id"], ["hubs.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_jobs_customer_id", "jobs", ["customer_id"])
        op.create_index("ix_jobs_status", "jobs", ["status"])

    if not _table_exists("job_timeline"):
        op.create_table(
            "job_timeline",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_id", sa.String(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("timestamp", sa.DateTime(), nullable=False),
            sa.Column("note", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_job_timeline_id", "job_timeline", ["id"])
        op.create_index("ix_job_timeline_job_id", "job_timeline", ["job_id"])

    if not _table_exists("payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tx_ref", sa.String(), nullable=False),
            sa.Column("job_id", sa.String(), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("currency", sa.String(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("transaction_id", sa.String(), nullable=True),
            sa.Column("customer_email", sa.String(), nullable=True),
            sa.Column("customer_name", sa.String(), nullable=True),
            sa.Column("verified_at", sa.DateTime(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tx_ref"),
        )
        op.create_index("ix_payments_id", "payments", ["id"])
        op.create_index("ix_payments_job_id", "payments", ["job_id"])
        op.create_index("ix_payments_transaction_id", "payments", ["transaction_id"])


def downgrade() -> None:
    for table in ("payments", "job_timeline", "jobs", "quotes", "hubs", "catalog_parts"):
        if _table_exists(table):
            op.drop_table(table)
