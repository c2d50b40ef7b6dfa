"""
Site aggregator: today's consumption so far, summed per electrical site.

CHANGELOG:
- 2026-10-19: Count non-finite today values as 0
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from meterhub.db.repositories import StorageFactory

logger = logging.getLogger(__name__)


def start_of_day(now: datetime) -> datetime:
    """Return midnight UTC of the day containing *now*."""
    now = now.astimezone(UTC)
    return datetime(now.year, now.month, now.day, tzinfo=UTC)


class SiteAggregator:
    """Sums each site's latest running totals for live display.

    Args:
        storage_factory: Opens a fresh Storage per call.
        sites: Electrical site name -> device ids.
    """

    def __init__(
        self,
        storage_factory: StorageFactory,
        sites: dict[str, list[int]],
    ) -> None:
        self._storage_factory = storage_factory
        self._sites = sites

    async def snapshot_today(self, now: datetime | None = None) -> dict[str, float]:
        """Return site name -> today's total so far.

        Each device contributes its most recent value in
        ``[start of today (UTC), now]``, or 0 when it has none or the stored
        value is not finite.
        """
        now = now or datetime.now(tz=UTC)
        day_start = start_of_day(now)
        totals: dict[str, float] = {}

        async with self._storage_factory() as storage:
            for site, device_ids in self._sites.items():
                total = Decimal(0)
                for device_id in device_ids:
                    value = await storage.today.latest_in_range(device_id, day_start, now)
                    if not value.is_finite():
                        logger.warning("Device %s: non-finite today value ignored", device_id)
                        continue
                    total += value
                totals[site] = float(total)

        return totals


def as_payload(totals: dict[str, float]) -> list[dict[str, float | str]]:
    """Convert site totals into the ``consumption-today-update`` payload."""
    return [{"site": site, "total": total} for site, total in totals.items()]
