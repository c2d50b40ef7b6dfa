"""
Parameter catalog: resolves a device's declared schema into an allow-list.

A vendor model may carry a ``plate_info`` declaration mapping parameter codes
to display settings. Resolution turns it into an ordered allow-list of visible
codes plus per-code metadata (the static ParameterDef for the device's reading
type, with any declared unit/precision/name overrides applied). Scale is never
overridable.

Malformed data never aborts resolution: a bad entry is skipped, a bad blob is
treated as "no schema" and the device falls back to unfiltered projection.

CHANGELOG:
- 2026-10-11: Accept bare boolean entries as visibility flags
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, ValidationError

from meterhub.db.models import Device
from meterhub.db.repositories import VendorCatalog
from meterhub.parameters import ParameterDef, parameters_for

logger = logging.getLogger(__name__)

APPARENT_POWER_FAMILY = "apparent-power-family"
"""Vendor kind whose meters report per-phase apparent power without a total."""

APPARENT_POWER_ALIASES: tuple[str, ...] = ("меркурий", "mercury")
"""Case-insensitive vendor name fragments identifying the apparent-power family."""


class PlateField(BaseModel):
    """One declared parameter entry of a vendor schema."""

    visible: bool = True
    name: str | None = None
    short_name: str | None = None
    unit: str | None = None
    decimal_places: int | None = Field(default=None, ge=0, le=6)

    model_config = {"extra": "ignore"}


class ResolvedParameters(NamedTuple):
    """Outcome of resolving a device's parameter schema.

    Attributes:
        allow_list: Visible codes in declaration order. Empty means fallback.
        metadata: Code -> ParameterDef for every parameter of the reading type.
        vendor_kind: :data:`APPARENT_POWER_FAMILY` or None.
    """

    allow_list: tuple[str, ...]
    metadata: dict[str, ParameterDef]
    vendor_kind: str | None


def detect_vendor_kind(vendor_name: str | None) -> str | None:
    """Return the vendor kind for a vendor name, or None."""
    if not vendor_name:
        return None
    folded = vendor_name.casefold()
    if any(alias in folded for alias in APPARENT_POWER_ALIASES):
        return APPARENT_POWER_FAMILY
    return None


def parse_plate_info(raw: Any) -> dict[str, PlateField]:
    """Parse a raw schema blob into code -> PlateField.

    Accepts a mapping or a JSON string encoding one. Codes are lower-cased.
    Entries may be objects or bare booleans (visibility flag). Entries that fail
    validation are logged and skipped.

    Returns:
        dict: Parsed entries in declaration order; empty when the blob itself
        is missing or malformed.
    """
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Schema blob is not valid JSON, ignoring it")
            return {}
    if not isinstance(raw, dict):
        logger.warning("Schema blob is a %s, expected an object", type(raw).__name__)
        return {}

    fields: dict[str, PlateField] = {}
    for code, entry in raw.items():
        if not isinstance(code, str) or not code.strip():
            logger.warning("Skipping schema entry with invalid code %r", code)
            continue
        if isinstance(entry, bool):
            entry = {"visible": entry}
        try:
            fields[code.strip().lower()] = PlateField.model_validate(entry)
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed schema entry %r: %s", code, exc.errors()[0]["msg"]
            )
    return fields


def apply_overrides(
    base: dict[str, ParameterDef],
    plate: dict[str, PlateField],
) -> dict[str, ParameterDef]:
    """Return *base* with declared display overrides applied per code."""
    merged = dict(base)
    for code, entry in plate.items():
        pdef = merged.get(code)
        if pdef is None:
            continue
        changes = {
            key: value
            for key, value in (
                ("name", entry.name),
                ("short_name", entry.short_name),
                ("unit", entry.unit),
                ("decimal_places", entry.decimal_places),
            )
            if value is not None
        }
        if changes:
            merged[code] = dataclasses.replace(pdef, **changes)
    return merged


class ParameterCatalog:
    """Resolves devices against their vendor's declared parameter schema.

    Args:
        vendors: Vendor lookup bound to the current storage session.
    """

    def __init__(self, vendors: VendorCatalog) -> None:
        self._vendors = vendors

    async def resolve(self, device: Device) -> ResolvedParameters:
        """Resolve the allow-list and metadata for *device*.

        Storage errors propagate; schema errors never do.
        """
        device_type = device.device_type.type if device.device_type else None
        base = parameters_for(device_type)

        if device.vendor_id is None:
            return ResolvedParameters((), base, None)

        vendor = await self._vendors.get_vendor(device.vendor_id)
        vendor_kind = detect_vendor_kind(vendor.name if vendor is not None else None)

        plate = parse_plate_info(await self._vendors.schema_for(device.vendor_id))
        allow_list = tuple(code for code, entry in plate.items() if entry.visible)
        if plate and not allow_list:
            logger.debug("Device %s: schema declares no visible parameters", device.id)

        return ResolvedParameters(allow_list, apply_overrides(base, plate), vendor_kind)
