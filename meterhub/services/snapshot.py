"""
Snapshot builder: one broadcastable envelope per device with live parameters.

For every device in the catalog, fetches the most recent reading for its type
(electrical or gas), resolves the parameter schema, projects the reading and
wraps the result in a :class:`DeviceEnvelope`. Devices of unknown type, without
a reading, or whose projection is empty are left out of the batch. A device
whose reads fail is logged and left out too; each device runs in its own
savepoint so the failure does not affect the rest of the batch.

The builder only reads; publishing the batch is the caller's job.

CHANGELOG:
- 2026-10-19: Isolate per-device failures
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel

from meterhub.db.models import Device
from meterhub.db.repositories import Storage, StorageFactory
from meterhub.services.catalog import ParameterCatalog
from meterhub.services.projector import ParameterValue, project

logger = logging.getLogger(__name__)

StatusColor = Literal["green", "red"]


class DeviceEnvelope(BaseModel):
    """Per-device payload of the ``device-data-update`` broadcast.

    Attributes:
        device_id: Device identifier.
        device_name: Device display name.
        object_name: Display name of the parent/site device, if any.
        status_color: ``"green"`` for active devices, ``"red"`` otherwise.
        sort_id: Display ordering key.
        average_values: Flattened code -> value map for simple consumers.
        parameters: Full ordered parameter list for rich consumers.
        last_update: Capture timestamp of the snapshot cycle (UTC).
    """

    device_id: int
    device_name: str
    object_name: str | None
    status_color: StatusColor
    sort_id: int | None
    average_values: dict[str, float]
    parameters: list[ParameterValue]
    last_update: datetime


def status_color(active: bool | None) -> StatusColor:
    """Map a device's active flag to its status indicator."""
    return "green" if active else "red"


class SnapshotBuilder:
    """Builds the device snapshot batch for one broadcast cycle.

    Args:
        storage_factory: Opens a fresh Storage per cycle.
    """

    def __init__(self, storage_factory: StorageFactory) -> None:
        self._storage_factory = storage_factory

    async def build_all(self, now: datetime | None = None) -> list[DeviceEnvelope]:
        """Build envelopes for every device with a non-empty projection.

        Args:
            now: Capture timestamp; defaults to the current UTC time.

        Returns:
            list[DeviceEnvelope]: Envelopes in catalog order.
        """
        captured_at = now or datetime.now(tz=UTC)
        envelopes: list[DeviceEnvelope] = []

        async with self._storage_factory() as storage:
            catalog = ParameterCatalog(storage.vendors)
            for device in await storage.devices.list_all():
                device_id = device.id
                try:
                    async with storage.savepoint():
                        envelope = await self._build_one(
                            storage, catalog, device, captured_at
                        )
                except Exception:
                    logger.warning(
                        "Device %s: snapshot failed, excluded", device_id, exc_info=True
                    )
                    continue
                if envelope is not None:
                    envelopes.append(envelope)

        logger.debug("Snapshot cycle built %d envelope(s)", len(envelopes))
        return envelopes

    async def _build_one(
        self,
        storage: Storage,
        catalog: ParameterCatalog,
        device: Device,
        captured_at: datetime,
    ) -> DeviceEnvelope | None:
        device_type = device.device_type.type if device.device_type else None
        reading = await storage.readings.latest_for(device.id, device_type)
        if reading is None:
            return None

        resolved = await catalog.resolve(device)
        params = project(
            reading, resolved.allow_list, resolved.metadata, resolved.vendor_kind
        )
        if not params:
            logger.debug("Device %s: empty projection, excluded", device.id)
            return None

        return DeviceEnvelope(
            device_id=device.id,
            device_name=device.name,
            object_name=device.parent.name if device.parent is not None else None,
            status_color=status_color(device.active),
            sort_id=device.sort_id,
            average_values={p.code: p.value for p in params},
            parameters=params,
            last_update=captured_at,
        )
