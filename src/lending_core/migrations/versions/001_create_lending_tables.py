"""Create raw snapshot, market timeseries and asset snapshot tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "lending_data"


def upgrade() -> None:
    # Schema is created by env.py before migrations run.
    op.create_table(
        "raw_snapshots",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("market_key", sa.Text, nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("timestamp", sa.BigInteger, nullable=False),
        sa.Column("raw_data", postgresql.JSONB, nullable=False),
        sa.Column("data_source", sa.Text, nullable=False),
        sa.Column("block_number", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("market_key", "date", "data_source"),
        schema=SCHEMA,
    )

    op.create_table(
        "market_timeseries",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("market_key", sa.Text, nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time_window", sa.Text, nullable=False),
        sa.Column("total_supplied_usd", sa.Numeric, nullable=False),
        sa.Column("total_borrowed_usd", sa.Numeric, nullable=False),
        sa.Column("available_liquidity_usd", sa.Numeric, nullable=False),
        sa.Column("data_source", sa.Text, nullable=False),
        sa.Column("raw_data_id", sa.BigInteger, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("market_key", "date", "time_window"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_market_timeseries_raw_data_id", "market_timeseries", ["raw_data_id"], schema=SCHEMA,
    )

    op.create_table(
        "asset_snapshots",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("market_key", sa.Text, nullable=False),
        sa.Column("underlying_asset", sa.Text, nullable=False),
        sa.Column("symbol", sa.Text, nullable=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("timestamp", sa.BigInteger, nullable=False),
        sa.Column("block_number", sa.BigInteger, nullable=True),
        sa.Column("supplied_tokens", sa.Text, nullable=False),
        sa.Column("borrowed_tokens", sa.Text, nullable=False),
        sa.Column("available_liquidity", sa.Text, nullable=False),
        sa.Column("supply_apr", sa.Numeric, nullable=False),
        sa.Column("borrow_apr", sa.Numeric, nullable=False),
        sa.Column("total_supplied_usd", sa.Numeric, nullable=False),
        sa.Column("total_borrowed_usd", sa.Numeric, nullable=False),
        sa.Column("utilization_rate", sa.Numeric, nullable=False),
        sa.Column("oracle_price", sa.Numeric, nullable=False),
        sa.Column("liquidity_index", sa.Text, nullable=False),
        sa.Column("variable_borrow_index", sa.Text, nullable=False),
        sa.Column("data_source", sa.Text, nullable=False),
        sa.Column("raw_data_id", sa.BigInteger, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("market_key", "underlying_asset", "date"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_asset_snapshots_raw_data_id", "asset_snapshots", ["raw_data_id"], schema=SCHEMA,
    )


def downgrade() -> None:
    op.drop_index("ix_asset_snapshots_raw_data_id", table_name="asset_snapshots", schema=SCHEMA)
    op.drop_table("asset_snapshots", schema=SCHEMA)
    op.drop_index("ix_market_timeseries_raw_data_id", table_name="market_timeseries", schema=SCHEMA)
    op.drop_table("market_timeseries", schema=SCHEMA)
    op.drop_table("raw_snapshots", schema=SCHEMA)
