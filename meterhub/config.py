"""
Service configuration loaded from environment variables and a site mapping file.

Uses Pydantic BaseSettings for automatic env var loading and validation. The
site -> device mappings (electrical and gas) live in a JSON file referenced by
SITE_CONFIG_PATH; they are static configuration, validated once at startup.

CHANGELOG:
- 2026-10-15: Add rollup catch-up and broadcast cache TTL settings
- 2026-10-07: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """meterhub daemon configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        database_url: SQLAlchemy async URL (postgresql+asyncpg://...).
        redis_url: Redis URL used as the broadcast sink.
        site_config_path: JSON file with electrical/gas site mappings.
        snapshot_interval_s: Seconds between snapshot broadcast cycles.
        rollup_tick_s: Seconds between rollup scheduler ticks.
        rollup_retry_s: Backoff after a failed rollup tick.
        rollup_catch_up: Fire on the first tick when the persisted marker
            shows a missed month boundary.
        broadcast_channel_prefix: Prefix for Redis pub/sub channels.
        broadcast_cache_ttl_s: TTL of the cached latest payload per topic.
        health_path: JSON health file path.
        log_level: Root log level.
    """

    database_url: str
    redis_url: str
    site_config_path: str = "sites.json"
    snapshot_interval_s: int = 5
    rollup_tick_s: int = 60
    rollup_retry_s: int = 300
    rollup_catch_up: bool = True
    broadcast_channel_prefix: str = "notifications"
    broadcast_cache_ttl_s: int = 30
    health_path: str = "/data/health.json"
    log_level: str = "INFO"

    @field_validator(
        "snapshot_interval_s",
        "rollup_tick_s",
        "rollup_retry_s",
        "broadcast_cache_ttl_s",
    )
    @classmethod
    def interval_must_be_positive(cls, v: int) -> int:
        """Validate that intervals and TTLs are at least one second."""
        if v < 1:
            raise ValueError("interval must be >= 1 second")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate and upper-case the log level name."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _retry_not_shorter_than_tick(self) -> "Settings":
        """The failure backoff must not be shorter than the normal tick."""
        if self.rollup_retry_s < self.rollup_tick_s:
            raise ValueError("ROLLUP_RETRY_S must be >= ROLLUP_TICK_S")
        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# ---------------------------------------------------------------------------
# Site mappings
# ---------------------------------------------------------------------------


def _check_unique(mapping: dict[str, list[int]], label: str) -> dict[str, list[int]]:
    seen: dict[int, str] = {}
    for site, device_ids in mapping.items():
        if not site.strip():
            raise ValueError(f"{label} mapping contains an empty site name")
        for device_id in device_ids:
            if device_id in seen:
                raise ValueError(
                    f"{label} mapping lists device {device_id} more than once "
                    f"(sites '{seen[device_id]}' and '{site}')"
                )
            seen[device_id] = site
    return mapping


class SiteMappings(BaseModel):
    """Site name -> contributing device ids, per consumption kind.

    A device id appears at most once within a mapping. The same id may appear
    in both mappings when a device is dual-metered.
    """

    electrical: dict[str, list[int]] = {}
    gas: dict[str, list[int]] = {}

    @field_validator("electrical")
    @classmethod
    def electrical_ids_unique(cls, v: dict[str, list[int]]) -> dict[str, list[int]]:
        """Reject duplicate device ids inside the electrical mapping."""
        return _check_unique(v, "electrical")

    @field_validator("gas")
    @classmethod
    def gas_ids_unique(cls, v: dict[str, list[int]]) -> dict[str, list[int]]:
        """Reject duplicate device ids inside the gas mapping."""
        return _check_unique(v, "gas")


def load_site_mappings(path: str | Path) -> SiteMappings:
    """Load and validate site mappings from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        SiteMappings: Validated mappings.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If the content is malformed or violates
            the per-mapping uniqueness rule.
    """
    mappings = SiteMappings.model_validate_json(Path(path).read_text(encoding="utf-8"))
    logger.info(
        "Loaded site mappings: %d electrical site(s), %d gas site(s)",
        len(mappings.electrical),
        len(mappings.gas),
    )
    return mappings
