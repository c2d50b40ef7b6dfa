"""
Tests for the parameter projector -- converts a reading row to ParameterValue list.

Verifies allow-list and fallback projection, the scale + round pipeline,
apparent-power augmentation for the apparent-power vendor family, and that the
projector is a pure, deterministic function.

CHANGELOG:
- 2026-10-19: Cover placeholder filling and non-finite values
- 2026-10-10: Cover augmentation on top of the fallback path
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from meterhub.db.models import ElectricalReading, GasReading
from meterhub.parameters import ELECTRICAL_PARAMETERS, GAS_PARAMETERS
from meterhub.services.catalog import APPARENT_POWER_FAMILY
from meterhub.services.projector import ParameterValue, project, to_display_value

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _reading(**values: object) -> ElectricalReading:
    """Return a transient electrical reading with only *values* set."""
    return ElectricalReading(device_id=101, **values)


def _codes(params: list[ParameterValue]) -> list[str]:
    return [p.code for p in params]


def _by_code(params: list[ParameterValue]) -> dict[str, ParameterValue]:
    return {p.code: p for p in params}


# ===========================================================================
# Scale + round
# ===========================================================================


class TestToDisplayValue:
    """Scale division and rounding."""

    def test_power_scaled_to_kilowatts(self) -> None:
        assert to_display_value(Decimal("12345"), ELECTRICAL_PARAMETERS["p_sum"]) == 12.345

    def test_rounded_to_declared_precision(self) -> None:
        assert to_display_value(Decimal("229.66"), ELECTRICAL_PARAMETERS["ua"]) == 229.7

    def test_float_input(self) -> None:
        assert to_display_value(5.005, ELECTRICAL_PARAMETERS["ia"]) == round(5.005, 2)

    def test_integer_input(self) -> None:
        assert to_display_value(50, ELECTRICAL_PARAMETERS["frequency"]) == 50.0


# ===========================================================================
# Allow-list projection
# ===========================================================================


class TestAllowListProjection:
    """Schema-driven projection."""

    def test_follows_allow_list_order(self) -> None:
        reading = _reading(ua=Decimal("230.1"), p_sum=Decimal("5000"), ia=Decimal("4.2"))

        params = project(reading, ["p_sum", "ua", "ia"], ELECTRICAL_PARAMETERS, None)

        assert _codes(params) == ["p_sum", "ua", "ia"]

    def test_entries_carry_metadata(self) -> None:
        reading = _reading(p_sum=Decimal("5000"))

        (param,) = project(reading, ["p_sum"], ELECTRICAL_PARAMETERS, None)

        assert param == ParameterValue(
            code="p_sum",
            name="Active power total",
            short_name="P",
            value=5.0,
            unit="kW",
            decimal_places=3,
            has_value=True,
        )

    def test_null_values_skipped(self) -> None:
        reading = _reading(ua=Decimal("230"))

        params = project(reading, ["ua", "ub"], ELECTRICAL_PARAMETERS, None)

        assert _codes(params) == ["ua"]

    def test_non_numeric_values_skipped(self) -> None:
        reading = SimpleNamespace(ua="230", ub=True, uc=Decimal("231"))

        params = project(reading, ["ua", "ub", "uc"], ELECTRICAL_PARAMETERS, None)

        assert _codes(params) == ["uc"]

    def test_unknown_codes_skipped(self) -> None:
        reading = _reading(ua=Decimal("230"))

        params = project(reading, ["bogus", "ua"], ELECTRICAL_PARAMETERS, None)

        assert _codes(params) == ["ua"]

    def test_non_finite_values_skipped(self) -> None:
        reading = _reading(ua=Decimal("NaN"), ub=float("-inf"), uc=Decimal("231"))

        params = project(reading, ["ua", "ub", "uc"], ELECTRICAL_PARAMETERS, None)

        assert _codes(params) == ["uc"]

    def test_all_absent_gives_empty_list(self) -> None:
        params = project(_reading(), ["ua", "ub"], ELECTRICAL_PARAMETERS, None)
        assert params == []


# ===========================================================================
# Fallback projection
# ===========================================================================


class TestFallbackProjection:
    """Projection without a declared schema."""

    def test_emits_every_table_parameter_in_order(self) -> None:
        params = project(_reading(ua=Decimal("230")), [], ELECTRICAL_PARAMETERS, None)
        assert _codes(params) == list(ELECTRICAL_PARAMETERS)

    def test_null_emitted_as_zero_without_value(self) -> None:
        params = _by_code(project(_reading(ua=Decimal("230")), [], ELECTRICAL_PARAMETERS, None))

        assert params["ua"].value == 230.0
        assert params["ua"].has_value is True
        assert params["ub"].value == 0.0
        assert params["ub"].has_value is False

    def test_gas_reading(self) -> None:
        reading = GasReading(device_id=31, temperature=Decimal("12.34"), volume_std=Decimal("1"))

        params = _by_code(project(reading, [], GAS_PARAMETERS, None))

        assert list(params) == list(GAS_PARAMETERS)
        assert params["temperature"].value == 12.3
        assert params["temperature"].unit == "°C"
        assert params["pressure"].has_value is False

    @pytest.mark.parametrize("raw", [Decimal("NaN"), Decimal("sNaN"), float("inf")])
    def test_non_finite_emitted_as_placeholder(self, raw: object) -> None:
        params = _by_code(project(_reading(ua=raw), [], ELECTRICAL_PARAMETERS, None))

        assert params["ua"].value == 0.0
        assert params["ua"].has_value is False

    def test_unknown_type_gives_empty_list(self) -> None:
        assert project(_reading(ua=Decimal("230")), [], {}, None) == []


# ===========================================================================
# Apparent-power augmentation
# ===========================================================================


class TestApparentPowerAugmentation:
    """Per-phase apparent power and derived sum for the apparent-power family."""

    def test_phases_and_sum_appended(self) -> None:
        reading = _reading(
            ua=Decimal("230"), aq1=Decimal("10000"), aq2=Decimal("20000"), aq3=Decimal("0")
        )

        params = project(reading, ["ua"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == ["ua", "aq1", "aq2", "aq3", "aq_sum"]
        values = {p.code: p.value for p in params}
        assert values["aq1"] == 10.0
        assert values["aq2"] == 20.0
        assert values["aq3"] == 0.0
        assert values["aq_sum"] == 30.0
        assert all(p.has_value for p in params)

    def test_null_phase_omitted(self) -> None:
        reading = _reading(ua=Decimal("230"), aq1=Decimal("10000"), aq2=Decimal("20000"))

        params = project(reading, ["ua"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == ["ua", "aq1", "aq2", "aq_sum"]
        assert _by_code(params)["aq_sum"].value == 30.0

    def test_zero_sum_omitted(self) -> None:
        reading = _reading(ua=Decimal("230"), aq1=Decimal("0"), aq2=Decimal("0"), aq3=Decimal("0"))

        params = project(reading, ["ua"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == ["ua", "aq1", "aq2", "aq3"]

    def test_allow_listed_codes_not_duplicated(self) -> None:
        reading = _reading(aq1=Decimal("10000"), aq2=Decimal("20000"), aq3=Decimal("5000"))

        params = project(reading, ["AQ1"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        # "AQ1" has no metadata under that spelling, so it projects nothing,
        # but it still counts as allow-listed for augmentation.
        assert _codes(params) == ["aq2", "aq3", "aq_sum"]
        assert _by_code(params)["aq_sum"].value == 35.0

    def test_projected_sum_not_duplicated(self) -> None:
        reading = _reading(
            aq1=Decimal("1000"), aq2=Decimal("1000"), aq3=Decimal("1000"), aq_sum=Decimal("3100")
        )

        params = project(reading, ["aq_sum"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == ["aq_sum", "aq1", "aq2", "aq3"]
        assert _by_code(params)["aq_sum"].value == 3.1

    def test_fallback_sum_fills_placeholder(self) -> None:
        reading = _reading(aq1=Decimal("10000"), aq2=Decimal("20000"), aq3=Decimal("0"))

        params = project(reading, [], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == list(ELECTRICAL_PARAMETERS)
        aq_sum = _by_code(params)["aq_sum"]
        assert aq_sum.value == 30.0
        assert aq_sum.has_value is True

    def test_fallback_null_phase_stays_placeholder(self) -> None:
        reading = _reading(aq1=Decimal("10000"), aq2=Decimal("20000"))

        params = _by_code(project(reading, [], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY))

        assert params["aq3"].has_value is False
        assert params["aq_sum"].value == 30.0

    def test_fallback_stored_sum_kept(self) -> None:
        reading = _reading(aq1=Decimal("1000"), aq2=Decimal("1000"), aq_sum=Decimal("2500"))

        params = _by_code(project(reading, [], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY))

        assert params["aq_sum"].value == 2.5

    def test_fallback_zero_sum_stays_placeholder(self) -> None:
        reading = _reading(aq1=Decimal("0"), aq2=Decimal("0"), aq3=Decimal("0"))

        params = _by_code(project(reading, [], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY))

        assert params["aq_sum"].has_value is False

    def test_nan_phase_ignored_in_sum(self) -> None:
        reading = _reading(aq1=Decimal("10000"), aq2=Decimal("NaN"))

        params = project(reading, ["ua"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == ["aq1", "aq_sum"]
        assert _by_code(params)["aq_sum"].value == 10.0

    def test_other_vendor_not_augmented(self) -> None:
        reading = _reading(ua=Decimal("230"), aq1=Decimal("10000"))

        params = project(reading, ["ua"], ELECTRICAL_PARAMETERS, None)

        assert _codes(params) == ["ua"]

    def test_gas_reading_not_augmented(self) -> None:
        reading = GasReading(device_id=31, temperature=Decimal("5"))

        params = project(reading, ["temperature"], GAS_PARAMETERS, APPARENT_POWER_FAMILY)

        assert _codes(params) == ["temperature"]


# ===========================================================================
# Determinism
# ===========================================================================


class TestDeterminism:
    """Identical input yields identical output."""

    @pytest.mark.parametrize("allow_list", [[], ["p_sum", "ua"]])
    def test_repeated_projection_identical(self, allow_list: list[str]) -> None:
        reading = _reading(
            ua=Decimal("229.95"), p_sum=Decimal("12345.678"), aq1=Decimal("333.3333")
        )

        first = project(reading, allow_list, ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)
        second = project(reading, allow_list, ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert [p.model_dump_json() for p in first] == [p.model_dump_json() for p in second]

    def test_reading_not_mutated(self) -> None:
        reading = _reading(aq1=Decimal("10000"), aq2=Decimal("20000"))

        project(reading, ["ua"], ELECTRICAL_PARAMETERS, APPARENT_POWER_FAMILY)

        assert reading.aq_sum is None
        assert reading.aq1 == Decimal("10000")
