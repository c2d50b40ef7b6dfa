"""
Parameter projector: turns a raw reading row into a display-ready parameter list.

Pure function, no I/O. Three stages:

1. Allow-list projection: when the device's schema declares visible codes,
   emit only those, in declaration order, skipping codes without a numeric
   value on the row.
2. Fallback projection: with no allow-list, emit every parameter from the
   static table of the reading type; null values are emitted as 0.0 with
   ``has_value=False``.
3. Apparent-power augmentation for the apparent-power vendor family: add
   per-phase apparent power (aq1..aq3) and their sum (aq_sum, only when > 0)
   for codes neither projected with a value nor allow-listed. A fallback
   placeholder for such a code is replaced in place; other codes are appended.

Non-finite values (NaN, infinity) are treated like nulls, so the output is
always valid JSON.

Every value passes through the same scale + round pipeline, so identical input
always yields identical output.

CHANGELOG:
- 2026-10-19: Fill fallback placeholders during augmentation; treat NaN as null
- 2026-10-10: Run augmentation on top of both projection paths
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from meterhub.parameters import (
    APPARENT_POWER_PHASES,
    APPARENT_POWER_SUM,
    ParameterDef,
)
from meterhub.services.catalog import APPARENT_POWER_FAMILY

logger = logging.getLogger(__name__)


class ParameterValue(BaseModel):
    """One projected parameter of a device snapshot.

    Attributes:
        code: Parameter code (reading column name).
        name: Full display name.
        short_name: Compact display label.
        value: Scaled and rounded display value.
        unit: Display unit.
        decimal_places: Precision the value was rounded to.
        has_value: False when the row held no value (fallback path only).
    """

    code: str
    name: str
    short_name: str
    value: float
    unit: str
    decimal_places: int
    has_value: bool


# ---------------------------------------------------------------------------
# Scale + round pipeline
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_numeric(value: Any) -> bool:
    """True for finite numbers; NaN and infinity do not count."""
    return _is_number(value) and Decimal(str(value)).is_finite()


def to_display_value(raw: int | float | Decimal, pdef: ParameterDef) -> float:
    """Divide *raw* by the parameter's scale and round to its precision."""
    scaled = Decimal(str(raw)) / Decimal(str(pdef.scale))
    return round(float(scaled), pdef.decimal_places)


def _entry(pdef: ParameterDef, raw: Any, *, has_value: bool) -> ParameterValue:
    return ParameterValue(
        code=pdef.code,
        name=pdef.name,
        short_name=pdef.short_name,
        value=to_display_value(raw, pdef) if has_value else 0.0,
        unit=pdef.unit,
        decimal_places=pdef.decimal_places,
        has_value=has_value,
    )


# ---------------------------------------------------------------------------
# Projection stages
# ---------------------------------------------------------------------------


def _project_allowed(
    reading: Any,
    allow_list: Sequence[str],
    metadata: Mapping[str, ParameterDef],
) -> list[ParameterValue]:
    params: list[ParameterValue] = []
    for code in allow_list:
        pdef = metadata.get(code)
        if pdef is None:
            continue
        raw = pdef.accessor(reading)
        if raw is None or not _is_numeric(raw):
            continue
        params.append(_entry(pdef, raw, has_value=True))
    return params


def _project_all(
    reading: Any,
    metadata: Mapping[str, ParameterDef],
) -> list[ParameterValue]:
    params: list[ParameterValue] = []
    for pdef in metadata.values():
        raw = pdef.accessor(reading)
        if _is_numeric(raw):
            params.append(_entry(pdef, raw, has_value=True))
        elif raw is None or _is_number(raw):
            params.append(_entry(pdef, None, has_value=False))
    return params


def _augment_apparent_power(
    reading: Any,
    params: list[ParameterValue],
    allow_list: Sequence[str],
    metadata: Mapping[str, ParameterDef],
) -> None:
    codes = (*APPARENT_POWER_PHASES, APPARENT_POWER_SUM)
    if any(code not in metadata for code in codes):
        return

    # Fallback placeholders hold no value, so they are filled rather than kept.
    taken = {p.code.casefold() for p in params if p.has_value}
    taken |= {c.casefold() for c in allow_list}
    positions = {p.code.casefold(): i for i, p in enumerate(params)}

    def _put(entry: ParameterValue) -> None:
        index = positions.get(entry.code.casefold())
        if index is None:
            params.append(entry)
        else:
            params[index] = entry

    total = Decimal(0)
    for code in APPARENT_POWER_PHASES:
        pdef = metadata[code]
        raw = pdef.accessor(reading)
        if raw is None or not _is_numeric(raw):
            continue
        total += Decimal(str(raw))
        if code.casefold() not in taken:
            _put(_entry(pdef, raw, has_value=True))

    if total > 0 and APPARENT_POWER_SUM.casefold() not in taken:
        _put(_entry(metadata[APPARENT_POWER_SUM], total, has_value=True))


def project(
    reading: Any,
    allow_list: Sequence[str],
    metadata: Mapping[str, ParameterDef],
    vendor_kind: str | None,
) -> list[ParameterValue]:
    """Project a reading row into an ordered parameter list.

    Args:
        reading: Reading row (ElectricalReading / GasReading or any object
            exposing the parameter attributes).
        allow_list: Visible codes from the vendor schema; empty selects the
            fallback projection.
        metadata: Code -> ParameterDef for the reading type, in fallback order.
        vendor_kind: Vendor kind from the catalog, or None.

    Returns:
        list[ParameterValue]: Allow-list (or fallback) entries first, augmented
        entries last.
    """
    if allow_list:
        params = _project_allowed(reading, allow_list, metadata)
    else:
        params = _project_all(reading, metadata)

    if vendor_kind == APPARENT_POWER_FAMILY:
        _augment_apparent_power(reading, params, allow_list, metadata)

    return params
