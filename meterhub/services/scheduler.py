"""
Rollup scheduler: decides once per tick whether the monthly rollup is due.

The rollup qualifies during two UTC windows around each month boundary:

- month end: last day of the month, from 23:00 onwards;
- month start: day 1, 00:00 to 00:04.

It fires when either window is open and the month remembered in
``last_rollover_month`` differs from the current one, so it runs at most once
per calendar month however many ticks land in the windows. The second window
covers a tick missed right at the boundary.

After a successful fire the timestamp is also persisted as a rollup marker.
On startup :meth:`RollupScheduler.restore` reloads it, and when the marker is
from an earlier month than now (a restart straddled the boundary) the first
tick catches up immediately. Rollups are idempotent, so an extra fire is
harmless.

Failures are caught at the tick boundary: the error is logged,
``last_rollover_month`` is left unchanged, and the loop waits the longer
retry interval before the next tick.

CHANGELOG:
- 2026-10-15: Persist the rollup marker and catch up after a missed boundary
- 2026-10-13: Compare (year, month) instead of month alone
- 2026-10-08: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import calendar
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from meterhub.db.repositories import StorageFactory

if TYPE_CHECKING:
    from meterhub.health import HealthWriter
    from meterhub.services.rollup import RollupEngine

logger = logging.getLogger(__name__)

MARKER_NAME = "monthly-rollup"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def is_month_end(now: datetime) -> bool:
    """True on the last day of the month from 23:00 onwards."""
    return now.day == calendar.monthrange(now.year, now.month)[1] and now.hour >= 23


def is_month_start(now: datetime) -> bool:
    """True on day 1 between 00:00 and 00:04."""
    return now.day == 1 and now.hour == 0 and now.minute < 5


def _same_month(a: datetime, b: datetime) -> bool:
    return (a.year, a.month) == (b.year, b.month)


class RollupScheduler:
    """Long-lived ticking loop driving :class:`RollupEngine`.

    Args:
        engine: The rollup engine to fire.
        storage_factory: Used to load/save the rollup marker. None disables
            marker persistence.
        tick_interval_s: Wait between ticks on the normal path.
        retry_interval_s: Wait after a failed tick.
        catch_up: Fire on the first tick when the restored marker predates
            the current month.
        clock: Returns the current UTC time.
        health: Optional health writer.
    """

    def __init__(
        self,
        engine: RollupEngine,
        *,
        storage_factory: StorageFactory | None = None,
        tick_interval_s: float = 60,
        retry_interval_s: float = 300,
        catch_up: bool = True,
        clock: Callable[[], datetime] = _utcnow,
        health: HealthWriter | None = None,
    ) -> None:
        self._engine = engine
        self._storage_factory = storage_factory
        self.tick_interval_s = tick_interval_s
        self.retry_interval_s = retry_interval_s
        self._catch_up = catch_up
        self._clock = clock
        self._health = health
        self.last_rollover_month: datetime | None = None
        self._catch_up_pending = False

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def is_due(self, now: datetime) -> bool:
        """Return True when the rollup should fire at *now*."""
        if self._catch_up_pending:
            return True
        if not (is_month_end(now) or is_month_start(now)):
            return False
        return self.last_rollover_month is None or not _same_month(
            self.last_rollover_month, now
        )

    async def tick(self, now: datetime | None = None) -> bool:
        """Evaluate one tick and fire the engine when due.

        Returns:
            bool: True if the rollup fired.

        Raises:
            Exception: Whatever the engine raised; state is left unchanged.
        """
        now = (now or self._clock()).astimezone(UTC)
        if self._health is not None:
            self._health.record_rollup_tick()

        if not self.is_due(now):
            return False

        logger.info("Month boundary reached at %s, running monthly rollup", now.isoformat())
        await self._engine.run_monthly_rollup(now)

        self.last_rollover_month = now
        self._catch_up_pending = False
        logger.info("Monthly rollup completed")
        if self._health is not None:
            self._health.record_rollup()
        await self._save_marker(now)
        return True

    # ------------------------------------------------------------------
    # Marker persistence (best effort)
    # ------------------------------------------------------------------

    async def restore(self) -> None:
        """Load the persisted marker into ``last_rollover_month``.

        A load failure is logged and treated as no marker.
        """
        if self._storage_factory is None:
            return
        try:
            async with self._storage_factory() as storage:
                fired_at = await storage.markers.load(MARKER_NAME)
        except Exception:
            logger.warning("Failed to load rollup marker", exc_info=True)
            return

        if fired_at is None:
            logger.info("No rollup marker found")
            return

        fired_at = fired_at.astimezone(UTC)
        self.last_rollover_month = fired_at
        now = self._clock().astimezone(UTC)
        if self._catch_up and (fired_at.year, fired_at.month) < (now.year, now.month):
            self._catch_up_pending = True
            logger.warning(
                "Last rollup fired %s, a month boundary was missed; catching up",
                fired_at.isoformat(),
            )
        else:
            logger.info("Restored rollup marker: %s", fired_at.isoformat())

    async def _save_marker(self, fired_at: datetime) -> None:
        if self._storage_factory is None:
            return
        try:
            async with self._storage_factory() as storage:
                await storage.markers.save(MARKER_NAME, fired_at)
        except Exception:
            logger.warning("Failed to persist rollup marker", exc_info=True)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Tick until *shutdown_event* is set.

        Waits ``tick_interval_s`` between ticks, or ``retry_interval_s`` after
        a failed one. The wait returns early when shutdown is signalled.
        """
        logger.info(
            "Rollup scheduler started (tick=%ss, retry=%ss)",
            self.tick_interval_s,
            self.retry_interval_s,
        )
        await self.restore()

        while not shutdown_event.is_set():
            delay = self.tick_interval_s
            try:
                await self.tick()
            except Exception:
                logger.error("Rollup scheduler tick failed", exc_info=True)
                delay = self.retry_interval_s

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(shutdown_event.wait(), timeout=delay)

        logger.info("Rollup scheduler stopped")
