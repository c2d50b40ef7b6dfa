"""
SQLAlchemy ORM models for the metering database.

Covers the device catalog (devices, types, vendors, vendor models with their
declared parameter schema), the raw per-device readings written by ingestion,
the consumption tables consulted and produced by the monthly rollup, and the
rollup marker that lets the scheduler survive a restart.

consumption_by_month carries a unique (device_id, dt) constraint. Rollups
always anchor dt at the first instant of the month, so the constraint is what
keeps at most one row per device and calendar month.

CHANGELOG:
- 2026-10-14: Add rollup_markers table for restart-safe scheduling
- 2026-10-06: Initial creation

TODO:
- None
"""

import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all meterhub ORM models."""

    pass


# ---------------------------------------------------------------------------
# Device catalog
# ---------------------------------------------------------------------------


class DeviceType(Base):
    """Device type tag, e.g. ``electrical`` or ``gas``."""

    __tablename__ = "device_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)


class Vendor(Base):
    """Meter manufacturer. The name drives vendor-family detection."""

    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)


class VendorModel(Base):
    """Vendor model carrying the declared parameter schema.

    Attributes:
        plate_info: Raw schema declaration mapping parameter codes to display
            metadata. Stored as JSONB; older rows may hold a JSON string.
    """

    __tablename__ = "vendor_models"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    vendor_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("vendors.id"), nullable=False
    )
    plate_info: Mapped[Any] = mapped_column(JSONB, nullable=True)


class Device(Base):
    """A metering device, optionally attached to a parent site device.

    Attributes:
        id: Device identifier.
        name: Display name.
        device_type_id: Reference to the device type tag.
        vendor_id: Optional vendor reference (``vendor`` column).
        parent_id: Optional parent/site device reference.
        active: Whether the device is currently reporting.
        sort_id: Display ordering key for dashboards.
    """

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    device_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("device_types.id"), nullable=True
    )
    vendor_id: Mapped[int | None] = mapped_column(
        "vendor", BigInteger, ForeignKey("vendors.id"), nullable=True
    )
    parent_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("devices.id"), nullable=True
    )
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    sort_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    device_type: Mapped[DeviceType | None] = relationship()
    parent: Mapped["Device | None"] = relationship(remote_side=[id])
    settings: Mapped["DeviceSettings | None"] = relationship(
        back_populates="device", uselist=False
    )

    def __repr__(self) -> str:
        """Return string representation of the Device."""
        return f"Device(id={self.id!r}, name={self.name!r})"


class DeviceSettings(Base):
    """Per-device acquisition settings."""

    __tablename__ = "device_settings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    device_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("devices.id"), nullable=False, unique=True
    )
    scan_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)

    device: Mapped[Device] = relationship(back_populates="settings")


# ---------------------------------------------------------------------------
# Raw readings (written by ingestion, read-only here)
# ---------------------------------------------------------------------------


class ElectricalReading(Base):
    """One electricity meter reading. Power and energy are stored in W/var/VA/Wh."""

    __tablename__ = "electricity_device_data"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    time_reading: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ua: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    ub: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    uc: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    ia: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    ib: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    ic: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    pa: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    pb: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    pc: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    p_sum: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    qa: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    qb: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    qc: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    q_sum: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    aq1: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    aq2: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    aq3: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    aq_sum: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    cos_a: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    cos_b: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    cos_c: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    frequency: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    energy_active: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    energy_reactive: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)


class GasReading(Base):
    """One gas corrector reading."""

    __tablename__ = "gas_device_data"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reading_time: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    temperature: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    pressure: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    flow_rate: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    flow_rate_std: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    volume_total: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    volume_std: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)


# ---------------------------------------------------------------------------
# Consumption
# ---------------------------------------------------------------------------


class ConsumptionByDay(Base):
    """Metered consumption of one device over one calendar day."""

    __tablename__ = "consumption_by_day"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    dt: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric, nullable=False)


class ConsumptionByToday(Base):
    """Running "today so far" total, appended during the day by ingestion."""

    __tablename__ = "consumption_by_today"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    dt: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    value: Mapped[Decimal] = mapped_column(Numeric, nullable=False)


class ConsumptionByMonth(Base):
    """Monthly rollup total, anchored at the first instant of the month (UTC)."""

    __tablename__ = "consumption_by_month"
    __table_args__ = (
        UniqueConstraint("device_id", "dt", name="uq_consumption_by_month_device_dt"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    dt: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    value: Mapped[Decimal] = mapped_column(Numeric, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the ConsumptionByMonth row."""
        return (
            f"ConsumptionByMonth(device_id={self.device_id!r}, "
            f"dt={self.dt!r}, value={self.value!r})"
        )


class RollupMarker(Base):
    """Timestamp of the last successful firing of a named scheduled job."""

    __tablename__ = "rollup_markers"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    fired_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
