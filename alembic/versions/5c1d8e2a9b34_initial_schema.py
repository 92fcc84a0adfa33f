"""initial schema: customers, documents, line items

Revision ID: 5c1d8e2a9b34
Revises:
Create Date: 2026-03-02 09:14:51.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '5c1d8e2a9b34'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DOCUMENT_TYPES = ("INVOICE", "ESTIMATE")
BUSINESS_TYPES = ("CONCRETE", "MASONRY")
DOCUMENT_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE", "APPROVED", "DECLINED", "CONVERTED")


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("customers"):
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("phone", sa.String(), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_customers_id", "customers", ["id"])

    if not _table_exists("documents"):
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("doc_type", sa.Enum(*DOCUMENT_TYPES, name="documenttype"), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("number", sa.String(), nullable=False),
            sa.Column("business_type", sa.Enum(*BUSINESS_TYPES, name="businesstype"), nullable=True),
            sa.Column("status", sa.Enum(*DOCUMENT_STATUSES, name="documentstatus"), nullable=True),
            sa.Column("customer_id", sa.Integer(), nullable=True),
            sa.Column("customer_name", sa.String(), nullable=False),
            sa.Column("customer_email", sa.String(), nullable=True),
            sa.Column("customer_phone", sa.String(), nullable=True),
            sa.Column("customer_address", sa.Text(), nullable=True),
            sa.Column("issue_date", sa.Date(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("valid_until", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("subtotal", sa.Float(), nullable=True),
            sa.Column("tax_rate", sa.Float(), nullable=True),
            sa.Column("tax", sa.Float(), nullable=True),
            sa.Column("total", sa.Float(), nullable=True),
            sa.Column("converted_from_id", sa.Integer(), nullable=True),
            sa.Column("converted_to_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
            sa.ForeignKeyConstraint(["converted_from_id"], ["documents.id"]),
            sa.ForeignKeyConstraint(["converted_to_id"], ["documents.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("number"),
        )
        op.create_index("ix_documents_id", "documents", ["id"])
        op.create_index("ix_documents_doc_type", "documents", ["doc_type"])

    if not _table_exists("line_items"):
        op.create_table(
            "line_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("document_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=True),
            sa.Column("description", sa.String(), nullable=False),
            sa.Column("service_type", sa.String(), nullable=True),
            sa.Column("quantity", sa.Float(), nullable=True),
            sa.Column("unit", sa.String(), nullable=True),
            sa.Column("unit_price", sa.Float(), nullable=True),
            sa.Column("amount", sa.Float(), nullable=True),
            sa.Column("details_json", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_line_items_id", "line_items", ["id"])


def downgrade() -> None:
    for table in ("line_items", "documents", "customers"):
        if _table_exists(table):
            op.drop_table(table)
