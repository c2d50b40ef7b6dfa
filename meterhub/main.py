"""
meterhub daemon entrypoint and command line.

``meterhub run`` (the default) runs two concurrent asyncio loops:

1. **Snapshot loop**: every ``snapshot_interval_s`` builds the device snapshot
   batch and today's per-site consumption totals and publishes them on the
   ``device-data-update`` and ``consumption-today-update`` topics.
2. **Rollup scheduler**: ticks every minute and runs the monthly rollup at
   each month boundary (see :mod:`meterhub.services.scheduler`).

Both loops are resilient: an exception in one iteration is logged and does not
crash the loop or affect the other loop. Graceful shutdown on SIGTERM/SIGINT
sets a shared asyncio.Event; both loops leave their wait immediately.

One-off maintenance commands:

- ``meterhub rollup [--now ISO8601]`` runs the monthly rollup once.
- ``meterhub set-scan-interval MS`` updates every device's scan interval.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-16: Add rollup and set-scan-interval commands
- 2026-10-12: Publish through RedisBroadcaster
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url

from meterhub.broadcast import CONSUMPTION_TODAY_TOPIC, DEVICE_DATA_TOPIC
from meterhub.services.site_aggregator import as_payload

if TYPE_CHECKING:
    from meterhub.broadcast import RedisBroadcaster
    from meterhub.config import Settings
    from meterhub.health import HealthWriter
    from meterhub.services.scheduler import RollupScheduler
    from meterhub.services.site_aggregator import SiteAggregator
    from meterhub.services.snapshot import SnapshotBuilder

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on stderr for the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _masked_url(url: str) -> str:
    """Return *url* with any password hidden."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable>"


def log_config_summary(settings: Settings) -> None:
    """Log a config summary at startup, with credentials masked."""
    logger.info(
        "meterhub starting with config: "
        "database_url=%s, redis_url=%s, site_config_path=%s, "
        "snapshot_interval_s=%s, rollup_tick_s=%s, rollup_retry_s=%s, "
        "rollup_catch_up=%s, broadcast_channel_prefix=%s, health_path=%s",
        _masked_url(settings.database_url),
        _masked_url(settings.redis_url),
        settings.site_config_path,
        settings.snapshot_interval_s,
        settings.rollup_tick_s,
        settings.rollup_retry_s,
        settings.rollup_catch_up,
        settings.broadcast_channel_prefix,
        settings.health_path,
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _broadcast_once(
    *,
    builder: SnapshotBuilder,
    aggregator: SiteAggregator,
    broadcaster: RedisBroadcaster,
    health: HealthWriter | None,
) -> None:
    """Build and publish one snapshot cycle.

    The device batch and the site totals are published independently: a
    failure in one is logged and does not suppress the other.
    """
    try:
        envelopes = await builder.build_all()
        payload = [envelope.model_dump(mode="json") for envelope in envelopes]
        await broadcaster.publish(DEVICE_DATA_TOPIC, payload)
        if health is not None:
            health.record_snapshot(len(envelopes))
    except Exception:
        logger.error("Device snapshot cycle error", exc_info=True)

    try:
        totals = await aggregator.snapshot_today()
        await broadcaster.publish(CONSUMPTION_TODAY_TOPIC, as_payload(totals))
    except Exception:
        logger.error("Consumption today cycle error", exc_info=True)


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _snapshot_loop(
    *,
    builder: SnapshotBuilder,
    aggregator: SiteAggregator,
    broadcaster: RedisBroadcaster,
    interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Run the snapshot broadcast loop until shutdown_event is set."""
    logger.info("Snapshot loop started (interval=%ss)", interval_s)
    while not shutdown_event.is_set():
        await _broadcast_once(
            builder=builder,
            aggregator=aggregator,
            broadcaster=broadcaster,
            health=health,
        )
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_s)
    logger.info("Snapshot loop stopped")


async def run_loops(
    *,
    builder: SnapshotBuilder,
    aggregator: SiteAggregator,
    broadcaster: RedisBroadcaster,
    scheduler: RollupScheduler,
    snapshot_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run the snapshot loop and the rollup scheduler concurrently until shutdown."""
    logger.info("Starting snapshot loop and rollup scheduler")
    await asyncio.gather(
        _snapshot_loop(
            builder=builder,
            aggregator=aggregator,
            broadcaster=broadcaster,
            interval_s=snapshot_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        ),
        scheduler.run(shutdown_event),
    )
    logger.info("Shutdown complete")


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _run_daemon(settings: Settings) -> None:
    from meterhub.broadcast import RedisBroadcaster
    from meterhub.config import load_site_mappings
    from meterhub.db.repositories import open_storage
    from meterhub.db.session import dispose_engine, init_engine
    from meterhub.health import HealthWriter
    from meterhub.services.rollup import RollupEngine
    from meterhub.services.scheduler import RollupScheduler
    from meterhub.services.site_aggregator import SiteAggregator
    from meterhub.services.snapshot import SnapshotBuilder

    sites = load_site_mappings(settings.site_config_path)
    storage_factory = partial(open_storage, init_engine(settings.database_url))
    health = HealthWriter(settings.health_path)
    broadcaster = RedisBroadcaster.from_url(
        settings.redis_url,
        channel_prefix=settings.broadcast_channel_prefix,
        cache_ttl_s=settings.broadcast_cache_ttl_s,
    )
    scheduler = RollupScheduler(
        RollupEngine(storage_factory, sites),
        storage_factory=storage_factory,
        tick_interval_s=settings.rollup_tick_s,
        retry_interval_s=settings.rollup_retry_s,
        catch_up=settings.rollup_catch_up,
        health=health,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: _handle_signal(shutdown_event))

    try:
        await run_loops(
            builder=SnapshotBuilder(storage_factory),
            aggregator=SiteAggregator(storage_factory, sites.electrical),
            broadcaster=broadcaster,
            scheduler=scheduler,
            snapshot_interval_s=settings.snapshot_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        )
    finally:
        await broadcaster.aclose()
        await dispose_engine()


async def _run_rollup_once(settings: Settings, now: datetime) -> None:
    from meterhub.config import load_site_mappings
    from meterhub.db.repositories import open_storage
    from meterhub.db.session import dispose_engine, init_engine
    from meterhub.services.rollup import RollupEngine

    sites = load_site_mappings(settings.site_config_path)
    storage_factory = partial(open_storage, init_engine(settings.database_url))
    try:
        await RollupEngine(storage_factory, sites).run_monthly_rollup(now)
    finally:
        await dispose_engine()


async def _set_scan_interval(settings: Settings, interval_ms: int) -> int:
    from meterhub.db.repositories import open_storage
    from meterhub.db.session import dispose_engine, init_engine
    from meterhub.services.device_settings import update_scan_interval

    storage_factory = partial(open_storage, init_engine(settings.database_url))
    try:
        return await update_scan_interval(storage_factory, interval_ms)
    finally:
        await dispose_engine()


def _parse_instant(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="meterhub",
        description="Metering telemetry aggregation and broadcast service.",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the snapshot broadcaster and rollup scheduler")

    rollup = sub.add_parser("rollup", help="Run the monthly rollup once")
    rollup.add_argument(
        "--now",
        type=_parse_instant,
        default=None,
        help="Reference time (ISO 8601, UTC if naive); rolls up the month before it",
    )

    scan = sub.add_parser("set-scan-interval", help="Set every device's scan interval")
    scan.add_argument("interval_ms", type=int, help="Scan interval in milliseconds")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Synchronous entrypoint for the ``meterhub`` command."""
    args = build_parser().parse_args(argv)

    from meterhub.config import Settings

    settings = Settings()
    configure_logging(settings.log_level)

    command = args.command or "run"
    if command == "run":
        log_config_summary(settings)
        asyncio.run(_run_daemon(settings))
    elif command == "rollup":
        asyncio.run(_run_rollup_once(settings, args.now or datetime.now(tz=UTC)))
    elif command == "set-scan-interval":
        try:
            asyncio.run(_set_scan_interval(settings, args.interval_ms))
        except ValueError as exc:
            logger.error("%s", exc)
            sys.exit(2)


if __name__ == "__main__":
    main()
