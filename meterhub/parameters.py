"""
Static parameter table for meter readings -- single source of truth.

Defines, per reading type, every numeric parameter a reading row can expose:
display names, engineering unit, decimal precision, and the fixed scale divisor
that converts the stored raw value into the display unit (for example W -> kW).

Each table is an ordered mapping from parameter code to :class:`ParameterDef`.
The order is the fallback projection order used when a device's vendor declares
no parameter schema. Identity, timestamp and relation columns are never listed.

CHANGELOG:
- 2026-10-09: Add apparent-power codes (aq1..aq3, aq_sum)
- 2026-10-06: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from operator import attrgetter
from typing import Any

ELECTRICAL = "electrical"
GAS = "gas"

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParameterDef:
    """Definition of a single reading parameter.

    Attributes:
        code: Parameter code, identical to the reading column attribute name.
        name: Full display name.
        short_name: Compact label for dense dashboards.
        unit: Display unit after scaling (e.g. ``"kW"``).
        decimal_places: Rounding precision of the display value.
        scale: Divisor applied to the raw stored value. ``1000.0`` converts
            W/var/VA/Wh into kW/kvar/kVA/kWh.
        accessor: Function returning the raw value from a reading row.
            Defaults to attribute lookup by ``code``.
    """

    code: str
    name: str
    short_name: str
    unit: str
    decimal_places: int = 2
    scale: float = 1.0
    accessor: Callable[[Any], Any] = field(default=None, repr=False, compare=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:  # noqa: D105
        if self.accessor is None:
            # frozen=True requires object.__setattr__
            object.__setattr__(self, "accessor", attrgetter(self.code))


def _table(*defs: ParameterDef) -> dict[str, ParameterDef]:
    return {d.code: d for d in defs}


# ---------------------------------------------------------------------------
# Electricity meters
# ---------------------------------------------------------------------------

_KILO = 1000.0

ELECTRICAL_PARAMETERS: dict[str, ParameterDef] = _table(
    ParameterDef("ua", "Voltage L1", "U1", "V", 1),
    ParameterDef("ub", "Voltage L2", "U2", "V", 1),
    ParameterDef("uc", "Voltage L3", "U3", "V", 1),
    ParameterDef("ia", "Current L1", "I1", "A", 2),
    ParameterDef("ib", "Current L2", "I2", "A", 2),
    ParameterDef("ic", "Current L3", "I3", "A", 2),
    ParameterDef("pa", "Active power L1", "P1", "kW", 3, _KILO),
    ParameterDef("pb", "Active power L2", "P2", "kW", 3, _KILO),
    ParameterDef("pc", "Active power L3", "P3", "kW", 3, _KILO),
    ParameterDef("p_sum", "Active power total", "P", "kW", 3, _KILO),
    ParameterDef("qa", "Reactive power L1", "Q1", "kvar", 3, _KILO),
    ParameterDef("qb", "Reactive power L2", "Q2", "kvar", 3, _KILO),
    ParameterDef("qc", "Reactive power L3", "Q3", "kvar", 3, _KILO),
    ParameterDef("q_sum", "Reactive power total", "Q", "kvar", 3, _KILO),
    ParameterDef("aq1", "Apparent power L1", "S1", "kVA", 3, _KILO),
    ParameterDef("aq2", "Apparent power L2", "S2", "kVA", 3, _KILO),
    ParameterDef("aq3", "Apparent power L3", "S3", "kVA", 3, _KILO),
    ParameterDef("aq_sum", "Apparent power total", "S", "kVA", 3, _KILO),
    ParameterDef("cos_a", "Power factor L1", "cos1", "", 3),
    ParameterDef("cos_b", "Power factor L2", "cos2", "", 3),
    ParameterDef("cos_c", "Power factor L3", "cos3", "", 3),
    ParameterDef("frequency", "Frequency", "F", "Hz", 2),
    ParameterDef("energy_active", "Active energy", "A+", "kWh", 2, _KILO),
    ParameterDef("energy_reactive", "Reactive energy", "R+", "kvarh", 2, _KILO),
)
"""Electricity reading parameters in fallback display order."""

APPARENT_POWER_PHASES: tuple[str, str, str] = ("aq1", "aq2", "aq3")
APPARENT_POWER_SUM = "aq_sum"

# ---------------------------------------------------------------------------
# Gas correctors
# ---------------------------------------------------------------------------

GAS_PARAMETERS: dict[str, ParameterDef] = _table(
    ParameterDef("temperature", "Gas temperature", "T", "°C", 1),
    ParameterDef("pressure", "Gas pressure", "P", "kPa", 2),
    ParameterDef("flow_rate", "Flow rate (working)", "Qw", "m³/h", 3),
    ParameterDef("flow_rate_std", "Flow rate (standard)", "Qs", "m³/h", 3),
    ParameterDef("volume_total", "Volume (working)", "Vw", "m³", 2),
    ParameterDef("volume_std", "Volume (standard)", "Vs", "m³", 2),
)
"""Gas reading parameters in fallback display order."""

PARAMETERS_BY_TYPE: dict[str, dict[str, ParameterDef]] = {
    ELECTRICAL: ELECTRICAL_PARAMETERS,
    GAS: GAS_PARAMETERS,
}


def normalize_device_type(device_type: str | None) -> str | None:
    """Return the lower-cased device type tag, or None when absent."""
    if not device_type:
        return None
    return device_type.strip().lower()


def parameters_for(device_type: str | None) -> dict[str, ParameterDef]:
    """Return the parameter table for a device type tag.

    Args:
        device_type: Device type tag, case-insensitive.

    Returns:
        dict: Ordered code -> ParameterDef mapping, empty for unknown types.
    """
    return PARAMETERS_BY_TYPE.get(normalize_device_type(device_type) or "", {})
