"""add estimate signatures, e-mail log and pricing settings

Revision ID: a7e4f0c3d912
Revises: 5c1d8e2a9b34
Create Date: 2026-03-09 18:40:07.731560

Signature and last-emailed columns may already exist on databases created by
Base.metadata.create_all(). Adds missing columns and tables idempotently.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = 'a7e4f0c3d912'
down_revision: Union[str, None] = '5c1d8e2a9b34'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DOCUMENT_COLUMNS = [
    ("signature_data", sa.Text()),
    ("signature_name", sa.String()),
    ("signed_at", sa.DateTime()),
    ("last_emailed_at", sa.DateTime()),
]


def _column_exists(table_name, column_name):
    """Check if a column already exists in the table."""
    bind = op.get_bind()
    insp = inspect(bind)
    columns = [c["name"] for c in insp.get_columns(table_name)]
    return column_name in columns


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    for col_name, col_type in DOCUMENT_COLUMNS:
        if not _column_exists("documents", col_name):
            op.add_column("documents", sa.Column(col_name, col_type, nullable=True))

    if not _table_exists("email_logs"):
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("document_id", sa.Integer(), nullable=False),
            sa.Column("recipient", sa.String(), nullable=True),
            sa.Column("subject", sa.String(), nullable=False),
            sa.Column("template", sa.String(), nullable=True),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_id", "email_logs", ["id"])

    if not _table_exists("pricing_settings"):
        op.create_table(
            "pricing_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(), nullable=False),
            sa.Column("value", sa.JSON(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key"),
        )
        op.create_index("ix_pricing_settings_id", "pricing_settings", ["id"])


def downgrade() -> None:
    for table in ("pricing_settings", "email_logs"):
        if _table_exists(table):
            op.drop_table(table)
    for col_name, _ in reversed(DOCUMENT_COLUMNS):
        if _column_exists("documents", col_name):
            op.drop_column("documents", col_name)
