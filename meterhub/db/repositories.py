"""
Storage access for the snapshot and rollup jobs.

Each reader/store wraps one short-lived AsyncSession. A :class:`Storage`
bundles them for one unit of work; :func:`open_storage` opens a fresh session
per call so no transaction is held across scheduler ticks or broadcast cycles.

Only MonthlyStore, RollupMarkerStore and DeviceSettingsStore write. Writes are
staged in the session and become durable on ``commit()``; leaving the
``open_storage`` context without committing discards them.

CHANGELOG:
- 2026-10-19: Add Storage.savepoint for per-device isolation
- 2026-10-14: Add RollupMarkerStore
- 2026-10-12: Add DeviceSettingsStore for scan interval updates
- 2026-10-08: Initial creation

TODO:
- None
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from meterhub.db.models import (
    ConsumptionByDay,
    ConsumptionByMonth,
    ConsumptionByToday,
    Device,
    DeviceSettings,
    ElectricalReading,
    GasReading,
    RollupMarker,
    Vendor,
    VendorModel,
)
from meterhub.parameters import ELECTRICAL, GAS, normalize_device_type

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)

# Reading model and its timestamp column per device type tag.
_READING_SOURCES: dict[str, tuple[type, Any]] = {
    ELECTRICAL: (ElectricalReading, ElectricalReading.time_reading),
    GAS: (GasReading, GasReading.reading_time),
}


def month_start(year: int, month: int) -> datetime.datetime:
    """Return the first instant of a calendar month in UTC."""
    return datetime.datetime(year, month, 1, tzinfo=datetime.UTC)


def next_month_start(year: int, month: int) -> datetime.datetime:
    """Return the first instant of the month following (year, month) in UTC."""
    if month == 12:
        return month_start(year + 1, 1)
    return month_start(year, month + 1)


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


class DailyReader:
    """Sums of per-day consumption."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def sum_by_device_and_date_range(
        self,
        device_id: int,
        start_date: datetime.date,
        end_date: datetime.date,
    ) -> Decimal:
        """Sum consumption_by_day.value for a device over an inclusive date range.

        Returns:
            Decimal: The sum, or ``0`` when the device has no rows in range.
        """
        stmt = select(func.coalesce(func.sum(ConsumptionByDay.value), 0)).where(
            ConsumptionByDay.device_id == device_id,
            ConsumptionByDay.dt >= start_date,
            ConsumptionByDay.dt <= end_date,
        )
        result = await self._session.execute(stmt)
        total = result.scalar_one()
        return Decimal(total) if total is not None else _ZERO


class TodayReader:
    """Latest running "today so far" totals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def latest_in_range(
        self,
        device_id: int,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> Decimal:
        """Return the most recent value with ``start <= dt <= end``, else 0."""
        stmt = (
            select(ConsumptionByToday.value)
            .where(
                ConsumptionByToday.device_id == device_id,
                ConsumptionByToday.dt >= start,
                ConsumptionByToday.dt <= end,
            )
            .order_by(ConsumptionByToday.dt.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        value = result.scalar_one_or_none()
        return value if value is not None else _ZERO


class ReadingReader:
    """Most recent raw reading per device, selected by device type."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def latest_for(
        self,
        device_id: int,
        device_type: str | None,
    ) -> ElectricalReading | GasReading | None:
        """Return the newest reading row, or None for unknown types / no data."""
        source = _READING_SOURCES.get(normalize_device_type(device_type) or "")
        if source is None:
            logger.debug(
                "No reading source for device %s (type=%r)", device_id, device_type
            )
            return None
        model, ts_column = source
        stmt = (
            select(model)
            .where(model.device_id == device_id)
            .order_by(ts_column.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class DeviceCatalog:
    """Read-only device listing with type, parent and settings preloaded."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_all(self) -> Sequence[Device]:
        """Return every device ordered by id."""
        stmt = (
            select(Device)
            .options(
                selectinload(Device.device_type),
                selectinload(Device.parent),
                selectinload(Device.settings),
            )
            .order_by(Device.id)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()


class VendorCatalog:
    """Vendor names and declared parameter schemas."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_vendor(self, vendor_id: int) -> Vendor | None:
        """Return the vendor row, or None when it does not exist."""
        return await self._session.get(Vendor, vendor_id)

    async def schema_for(self, vendor_id: int) -> Any:
        """Return the raw ``plate_info`` blob of the vendor's model, if any."""
        stmt = (
            select(VendorModel.plate_info)
            .where(VendorModel.vendor_id == vendor_id)
            .order_by(VendorModel.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


class MonthlyStore:
    """Monthly rollup rows, one per device and calendar month."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_device_and_month(
        self,
        device_id: int,
        year: int,
        month: int,
    ) -> ConsumptionByMonth | None:
        """Return the row anchored within (year, month) for a device, if any.

        Pending rows added earlier in the same session are visible through
        autoflush.
        """
        stmt = (
            select(ConsumptionByMonth)
            .where(
                ConsumptionByMonth.device_id == device_id,
                ConsumptionByMonth.dt >= month_start(year, month),
                ConsumptionByMonth.dt < next_month_start(year, month),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def upsert(self, record: ConsumptionByMonth) -> None:
        """Stage a new or modified row for the next commit."""
        self._session.add(record)

    async def commit(self) -> None:
        """Commit all staged rows as one batch."""
        await self._session.commit()


class RollupMarkerStore:
    """Persisted timestamp of the last successful rollup firing."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def load(self, name: str) -> datetime.datetime | None:
        """Return ``fired_at`` for the named marker, or None."""
        marker = await self._session.get(RollupMarker, name)
        return marker.fired_at if marker is not None else None

    async def save(self, name: str, fired_at: datetime.datetime) -> None:
        """Create or overwrite the named marker and commit."""
        marker = await self._session.get(RollupMarker, name)
        if marker is None:
            self._session.add(RollupMarker(name=name, fired_at=fired_at))
        else:
            marker.fired_at = fired_at
        await self._session.commit()


class DeviceSettingsStore:
    """Bulk updates of per-device acquisition settings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def set_scan_interval_all(self, interval_ms: int) -> int:
        """Set scan_interval on every device_settings row and commit.

        Returns:
            int: Number of rows updated.
        """
        result = await self._session.execute(
            update(DeviceSettings).values(scan_interval=interval_ms)
        )
        await self._session.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class Storage:
    """All readers and stores bound to one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.daily = DailyReader(session)
        self.today = TodayReader(session)
        self.readings = ReadingReader(session)
        self.devices = DeviceCatalog(session)
        self.vendors = VendorCatalog(session)
        self.monthly = MonthlyStore(session)
        self.markers = RollupMarkerStore(session)
        self.device_settings = DeviceSettingsStore(session)

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Open a SAVEPOINT; an error inside rolls back only that savepoint."""
        return self.session.begin_nested()


StorageFactory = Callable[[], AbstractAsyncContextManager[Storage]]
"""Zero-argument callable returning an async context manager yielding Storage."""


@asynccontextmanager
async def open_storage(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[Storage]:
    """Open a session and yield a Storage bound to it.

    The session is closed on exit; anything not committed is rolled back.
    """
    async with session_factory() as session:
        yield Storage(session)
