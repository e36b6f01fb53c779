"""Add processed markers to raw snapshots.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "lending_data"


def upgrade() -> None:
    op.add_column(
        "raw_snapshots",
        sa.Column("timeseries_processed_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )
    op.add_column(
        "raw_snapshots",
        sa.Column("assets_processed_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )

    # Snapshots already expanded count as processed.
    op.execute(
        f"""
        UPDATE {SCHEMA}.raw_snapshots r SET timeseries_processed_at = now()
        WHERE EXISTS (SELECT 1 FROM {SCHEMA}.market_timeseries t WHERE t.raw_data_id = r.id)
        """
    )
    op.execute(
        f"""
        UPDATE {SCHEMA}.raw_snapshots r SET assets_processed_at = now()
        WHERE EXISTS (SELECT 1 FROM {SCHEMA}.asset_snapshots a WHERE a.raw_data_id = r.id)
        """
    )


def downgrade() -> None:
    op.drop_column("raw_snapshots", "assets_processed_at", schema=SCHEMA)
    op.drop_column("raw_snapshots", "timeseries_processed_at", schema=SCHEMA)
