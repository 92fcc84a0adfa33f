"""add document counters

Revision ID: c3f9b1d27e60
Revises: a7e4f0c3d912
Create Date: 2026-10-18 09:12:44.208317

Numbers used to come from max(documents.sequence), which reissued the number
of a deleted latest document. Counters are seeded from the existing sequences.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = 'c3f9b1d27e60'
down_revision: Union[str, None] = 'a7e4f0c3d912'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("document_counters"):
        op.create_table(
            "document_counters",
            sa.Column("doc_type", sa.String(length=8), nullable=False),  # DocumentType member name
            sa.Column("last_sequence", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("doc_type"),
        )

    # Seed from existing documents; rows already present keep their value
    op.execute(
        "INSERT INTO document_counters (doc_type, last_sequence) "
        "SELECT doc_type, MAX(sequence) FROM documents "
        "WHERE doc_type NOT IN (SELECT doc_type FROM document_counters) "
        "GROUP BY doc_type"
    )


def downgrade() -> None:
    if _table_exists("document_counters"):
        op.drop_table("document_counters")
