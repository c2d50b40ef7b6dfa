"""
Health file writer for the meterhub daemon.

Writes a JSON health file at a configurable path with four fields:
- last_snapshot_ts: ISO timestamp of the most recent snapshot broadcast.
- devices_broadcast: Number of device envelopes in that broadcast.
- last_rollup_tick_ts: ISO timestamp of the most recent scheduler tick.
- last_rollup_ts: ISO timestamp of the most recent successful monthly rollup.

The file is rewritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-16: Track snapshot and rollup activity instead of poll/upload
- 2026-10-06: Initial creation
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class HealthWriter:
    """Writes daemon health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.
    Write failures are logged, never raised.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_snapshot_ts: str | None = None
        self._devices_broadcast: int = 0
        self._last_rollup_tick_ts: str | None = None
        self._last_rollup_ts: str | None = None

    def record_snapshot(self, device_count: int) -> None:
        """Record a snapshot broadcast and write health file.

        Args:
            device_count: Number of device envelopes broadcast.
        """
        self._last_snapshot_ts = datetime.now(tz=UTC).isoformat()
        self._devices_broadcast = device_count
        self._write()

    def record_rollup_tick(self) -> None:
        """Record a scheduler tick and write health file."""
        self._last_rollup_tick_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def record_rollup(self) -> None:
        """Record a successful monthly rollup and write health file."""
        self._last_rollup_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def _write(self) -> None:
        data = {
            "last_snapshot_ts": self._last_snapshot_ts,
            "devices_broadcast": self._devices_broadcast,
            "last_rollup_tick_ts": self._last_rollup_tick_ts,
            "last_rollup_ts": self._last_rollup_ts,
        }
        try:
            self.path.write_text(json.dumps(data))
        except OSError:
            logger.warning("Failed to write health file %s", self.path, exc_info=True)
