"""
Monthly rollup engine: folds daily consumption into per-device monthly totals.

For the calendar month preceding ``now`` (UTC), sums consumption_by_day per
device for every device in the electrical mapping, then the gas mapping, and
upserts one consumption_by_month row per device anchored at the first instant
of that month. Sums are recomputed from scratch on every run, so re-running
for the same month overwrites rather than accumulates.

All upserts are committed as a single batch at the end. Any failure leaves
the batch uncommitted and is re-raised to the caller.

CHANGELOG:
- 2026-10-13: Compute the window from the caller's clock instead of utcnow()
- 2026-10-08: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

from meterhub.config import SiteMappings
from meterhub.db.models import ConsumptionByMonth
from meterhub.db.repositories import Storage, StorageFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollupWindow:
    """The calendar month being rolled up.

    Attributes:
        year: Calendar year of the rolled-up month.
        month: Calendar month (1-12).
        start: First instant of the month (UTC).
        end: Last instant of the month (UTC, one second before the next month).
    """

    year: int
    month: int
    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def previous_month_window(now: datetime) -> RollupWindow:
    """Return the window of the calendar month before *now* (in UTC)."""
    now = now.astimezone(UTC)
    this_month = datetime(now.year, now.month, 1, tzinfo=UTC)
    start = (this_month - timedelta(days=1)).replace(day=1)
    end = this_month - timedelta(seconds=1)
    return RollupWindow(year=start.year, month=start.month, start=start, end=end)


class RollupEngine:
    """Computes and stores monthly consumption totals.

    Args:
        storage_factory: Opens a fresh Storage per run.
        sites: Electrical and gas site mappings.
    """

    def __init__(self, storage_factory: StorageFactory, sites: SiteMappings) -> None:
        self._storage_factory = storage_factory
        self._sites = sites

    async def run_monthly_rollup(self, now: datetime) -> None:
        """Roll up the month preceding *now* and commit it as one batch.

        Raises:
            Exception: Any storage error; nothing from this run is committed.
        """
        window = previous_month_window(now)
        logger.info(
            "Monthly rollup for %s (%s .. %s)",
            window.label,
            window.start.isoformat(),
            window.end.isoformat(),
        )

        try:
            async with self._storage_factory() as storage:
                count = 0
                for kind, mapping in (
                    ("electrical", self._sites.electrical),
                    ("gas", self._sites.gas),
                ):
                    for device_ids in mapping.values():
                        for device_id in device_ids:
                            await self._upsert_device(storage, window, device_id, kind)
                            count += 1
                await storage.monthly.commit()
        except Exception:
            logger.error("Monthly rollup for %s failed, batch discarded", window.label)
            raise

        logger.info("Monthly rollup for %s committed (%d row(s))", window.label, count)

    async def _upsert_device(
        self,
        storage: Storage,
        window: RollupWindow,
        device_id: int,
        kind: str,
    ) -> None:
        total: Decimal = await storage.daily.sum_by_device_and_date_range(
            device_id, window.start_date, window.end_date
        )
        record = await storage.monthly.find_by_device_and_month(
            device_id, window.year, window.month
        )
        if record is not None:
            record.value = total
            record.dt = window.start
            logger.info(
                "Updated %s device_id=%s for %s: %s", kind, device_id, window.label, total
            )
        else:
            record = ConsumptionByMonth(device_id=device_id, dt=window.start, value=total)
            logger.info(
                "Created %s device_id=%s for %s: %s", kind, device_id, window.label, total
            )
        await storage.monthly.upsert(record)
