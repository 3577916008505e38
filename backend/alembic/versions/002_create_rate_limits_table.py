"""Create rate_limits table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:01.000000+00:00

What:  Counter records for the rate limiter, one row per limiter key.
How:   Timestamps are integer epoch seconds. `expires_at` is indexed so a
       periodic purge can delete stale rows without a full scan.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "rate_limits",
        sa.Column("key", sa.String(512), nullable=False, comment="prefix:identifier[:route]"),
        sa.Column("requests", sa.JSON(), nullable=False, comment="Request timestamps in the window"),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("blocked_until", sa.BigInteger(), nullable=True),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index("idx_rate_limits_expires_at", "rate_limits", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_rate_limits_expires_at", table_name="rate_limits")
    op.drop_table("rate_limits")
