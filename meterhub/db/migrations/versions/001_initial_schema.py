"""
Initial schema: device catalog, readings, consumption and rollup marker tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-06

CHANGELOG:
- 2026-10-14: Add rollup_markers
- 2026-10-06: Initial creation

TODO:
- None
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ELECTRICAL_COLUMNS = (
    "ua", "ub", "uc",
    "ia", "ib", "ic",
    "pa", "pb", "pc", "p_sum",
    "qa", "qb", "qc", "q_sum",
    "aq1", "aq2", "aq3", "aq_sum",
    "cos_a", "cos_b", "cos_c",
    "frequency", "energy_active", "energy_reactive",
)  # fmt: skip

_GAS_COLUMNS = (
    "temperature",
    "pressure",
    "flow_rate",
    "flow_rate_std",
    "volume_total",
    "volume_std",
)


def _numeric_columns(names: Sequence[str]) -> list[sa.Column]:
    return [sa.Column(name, sa.Numeric(), nullable=True) for name in names]


def upgrade() -> None:
    """Create all meterhub tables and their lookup indexes."""
    op.create_table(
        "device_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.Text(), nullable=False),
    )
    op.create_table(
        "vendors",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=True),
    )
    op.create_table(
        "vendor_models",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("vendor_id", sa.BigInteger(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("plate_info", JSONB(), nullable=True),
    )
    op.create_table(
        "devices",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "device_type_id", sa.Integer(), sa.ForeignKey("device_types.id"), nullable=True
        ),
        sa.Column("vendor", sa.BigInteger(), sa.ForeignKey("vendors.id"), nullable=True),
        sa.Column("parent_id", sa.BigInteger(), sa.ForeignKey("devices.id"), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sort_id", sa.Integer(), nullable=True),
    )
    op.create_table(
        "device_settings",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "device_id",
            sa.BigInteger(),
            sa.ForeignKey("devices.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("scan_interval", sa.Integer(), nullable=True),
    )

    op.create_table(
        "electricity_device_data",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("device_id", sa.BigInteger(), nullable=False),
        sa.Column("time_reading", sa.DateTime(timezone=True), nullable=False),
        *_numeric_columns(_ELECTRICAL_COLUMNS),
    )
    op.create_index(
        "ix_electricity_device_data_device_time",
        "electricity_device_data",
        ["device_id", sa.text("time_reading DESC")],
    )
    op.create_table(
        "gas_device_data",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("device_id", sa.BigInteger(), nullable=False),
        sa.Column("reading_time", sa.DateTime(timezone=True), nullable=False),
        *_numeric_columns(_GAS_COLUMNS),
    )
    op.create_index(
        "ix_gas_device_data_device_time",
        "gas_device_data",
        ["device_id", sa.text("reading_time DESC")],
    )

    op.create_table(
        "consumption_by_day",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("device_id", sa.BigInteger(), nullable=False),
        sa.Column("dt", sa.Date(), nullable=False),
        sa.Column("value", sa.Numeric(), nullable=False),
    )
    op.create_index("ix_consumption_by_day_device_dt", "consumption_by_day", ["device_id", "dt"])
    op.create_table(
        "consumption_by_today",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("device_id", sa.BigInteger(), nullable=False),
        sa.Column("dt", sa.DateTime(timezone=True), nullable=False),
        sa.Column("value", sa.Numeric(), nullable=False),
    )
    op.create_index(
        "ix_consumption_by_today_device_dt", "consumption_by_today", ["device_id", "dt"]
    )
    op.create_table(
        "consumption_by_month",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("device_id", sa.BigInteger(), nullable=False),
        sa.Column("dt", sa.DateTime(timezone=True), nullable=False),
        sa.Column("value", sa.Numeric(), nullable=False),
        sa.UniqueConstraint("device_id", "dt", name="uq_consumption_by_month_device_dt"),
    )

    op.create_table(
        "rollup_markers",
        sa.Column("name", sa.Text(), primary_key=True),
        sa.Column("fired_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Drop all meterhub tables in dependency order."""
    for table in (
        "rollup_markers",
        "consumption_by_month",
        "consumption_by_today",
        "consumption_by_day",
        "gas_device_data",
        "electricity_device_data",
        "device_settings",
        "devices",
        "vendor_models",
        "vendors",
        "device_types",
    ):
        op.drop_table(table)
