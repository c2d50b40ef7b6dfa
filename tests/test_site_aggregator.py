"""
Tests for SiteAggregator -- today's consumption so far per electrical site.

CHANGELOG:
- 2026-10-19: Cover non-finite today values
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from meterhub.services.site_aggregator import SiteAggregator, as_payload, start_of_day

from tests.fakes import FakeStorage

_NOW = datetime(2024, 3, 14, 15, 30, 0, tzinfo=UTC)


class TestStartOfDay:
    """Midnight UTC of the current day."""

    def test_utc(self) -> None:
        assert start_of_day(_NOW) == datetime(2024, 3, 14, tzinfo=UTC)

    def test_other_offset_converted_to_utc(self) -> None:
        local = datetime(2024, 3, 15, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        assert start_of_day(local) == datetime(2024, 3, 14, tzinfo=UTC)


class TestSnapshotToday:
    """Per-site totals."""

    @pytest.mark.asyncio
    async def test_sums_site_devices(self, storage_factory, fake_storage: FakeStorage) -> None:
        fake_storage.today.add(101, _NOW - timedelta(minutes=5), "12.5")
        fake_storage.today.add(102, _NOW - timedelta(minutes=1), "7.5")

        totals = await SiteAggregator(storage_factory, {"SiteA": [101, 102]}).snapshot_today(
            now=_NOW
        )

        assert totals == {"SiteA": 20.0}

    @pytest.mark.asyncio
    async def test_latest_row_per_device_used(
        self, storage_factory, fake_storage: FakeStorage
    ) -> None:
        fake_storage.today.add(101, _NOW - timedelta(hours=2), "3.0")
        fake_storage.today.add(101, _NOW - timedelta(minutes=1), "12.5")

        totals = await SiteAggregator(storage_factory, {"SiteA": [101]}).snapshot_today(now=_NOW)

        assert totals == {"SiteA": 12.5}

    @pytest.mark.asyncio
    async def test_missing_device_counts_as_zero(
        self, storage_factory, fake_storage: FakeStorage
    ) -> None:
        fake_storage.today.add(101, _NOW - timedelta(minutes=1), "12.5")

        totals = await SiteAggregator(
            storage_factory, {"SiteA": [101, 102], "SiteB": [103]}
        ).snapshot_today(now=_NOW)

        assert totals == {"SiteA": 12.5, "SiteB": 0.0}

    @pytest.mark.asyncio
    async def test_non_finite_value_counts_as_zero(
        self, storage_factory, fake_storage: FakeStorage
    ) -> None:
        fake_storage.today.add(101, _NOW - timedelta(minutes=1), "12.5")
        fake_storage.today.add(102, _NOW - timedelta(minutes=1), "NaN")

        totals = await SiteAggregator(storage_factory, {"SiteA": [101, 102]}).snapshot_today(
            now=_NOW
        )

        assert totals == {"SiteA": 12.5}

    @pytest.mark.asyncio
    async def test_rows_before_today_ignored(
        self, storage_factory, fake_storage: FakeStorage
    ) -> None:
        fake_storage.today.add(101, datetime(2024, 3, 13, 23, 59, tzinfo=UTC), "99")

        totals = await SiteAggregator(storage_factory, {"SiteA": [101]}).snapshot_today(now=_NOW)

        assert totals == {"SiteA": 0.0}

    @pytest.mark.asyncio
    async def test_rows_after_now_ignored(
        self, storage_factory, fake_storage: FakeStorage
    ) -> None:
        fake_storage.today.add(101, _NOW + timedelta(minutes=1), "99")

        totals = await SiteAggregator(storage_factory, {"SiteA": [101]}).snapshot_today(now=_NOW)

        assert totals == {"SiteA": 0.0}

    @pytest.mark.asyncio
    async def test_no_sites(self, storage_factory) -> None:
        assert await SiteAggregator(storage_factory, {}).snapshot_today(now=_NOW) == {}


class TestAsPayload:
    """Broadcast payload shape."""

    def test_payload_keeps_site_order(self) -> None:
        assert as_payload({"B": 1.5, "A": 0.0}) == [
            {"site": "B", "total": 1.5},
            {"site": "A", "total": 0.0},
        ]
