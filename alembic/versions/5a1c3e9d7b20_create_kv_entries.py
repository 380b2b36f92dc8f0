"""Create the key-value table backing the credit ledger.

Revision ID: 5a1c3e9d7b20
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "5a1c3e9d7b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "kv_entries",
    sa.Column("key", sa.String(), nullable=False),
    sa.Column("value", sa.Text(), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint("key"),
  )
  op.create_index(op.f("ix_kv_entries_expires_at"), "kv_entries", ["expires_at"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_kv_entries_expires_at"), table_name="kv_entries")
  op.drop_table("kv_entries")
