"""
Device settings maintenance: fleet-wide scan interval update.

CHANGELOG:
- 2026-10-12: Initial creation
"""

from __future__ import annotations

import logging

from meterhub.db.repositories import StorageFactory

logger = logging.getLogger(__name__)


async def update_scan_interval(storage_factory: StorageFactory, interval_ms: int) -> int:
    """Set the acquisition scan interval of every device.

    Args:
        storage_factory: Opens a fresh Storage.
        interval_ms: New scan interval in milliseconds.

    Returns:
        int: Number of device_settings rows updated.

    Raises:
        ValueError: If *interval_ms* is not positive.
    """
    if interval_ms <= 0:
        raise ValueError("scan interval must be a positive number of milliseconds")

    async with storage_factory() as storage:
        updated = await storage.device_settings.set_scan_interval_all(interval_ms)

    logger.info("Scan interval updated to %dms on %d device(s)", interval_ms, updated)
    return updated
