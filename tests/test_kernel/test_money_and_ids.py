"""
Tests for monetary parsing and identifier normalization

Fun fact: 0.1 + 0.2 != 0.3 in binary floating point, which is why every
amount here goes through Decimal(str(value)) instead of Decimal(value).
"""

import uuid
from decimal import Decimal

import pytest

from budget_lifecycle.kernel.errors import ValidationError
from budget_lifecycle.kernel.ids import generate_id, normalize_id
from budget_lifecycle.kernel.money import to_decimal


# =============================================================================
# to_decimal
# =============================================================================


class TestToDecimal:
    def test_parses_int_str_and_decimal(self) -> None:
        """Plain numeric forms become Decimal"""
        assert to_decimal(5) == Decimal("5")
        assert to_decimal("150000") == Decimal("150000")
        assert to_decimal(" 12.50 ") == Decimal("12.50")
        assert to_decimal(Decimal("7.25")) == Decimal("7.25")

    def test_float_goes_through_string_form(self) -> None:
        """0.1 stays 0.1, not 0.1000000000000000055511151231257827"""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_missing_value_uses_default(self) -> None:
        """None and blank strings fall back to the default"""
        assert to_decimal(None, default=Decimal("1")) == Decimal("1")
        assert to_decimal("  ", default=Decimal("0")) == Decimal("0")

    def test_missing_value_without_default_is_rejected(self) -> None:
        """Required amounts must be present"""
        with pytest.raises(ValidationError, match="qty is required"):
            to_decimal(None, "qty")

    @pytest.mark.parametrize("value", ["abc", "1,000", [], {}, object()])
    def test_unparseable_values_are_rejected(self, value: object) -> None:
        """Garbage is a ValidationError, never a crash"""
        with pytest.raises(ValidationError):
            to_decimal(value, "unitCost")

    def test_booleans_are_not_numbers(self) -> None:
        """True must not silently become 1"""
        with pytest.raises(ValidationError, match="must be a number"):
            to_decimal(True)

    @pytest.mark.parametrize("value", ["NaN", "Infinity", float("inf")])
    def test_non_finite_values_are_rejected(self, value: object) -> None:
        with pytest.raises(ValidationError, match="finite"):
            to_decimal(value)

    def test_negative_amounts_are_rejected(self) -> None:
        with pytest.raises(ValidationError, match="cannot be negative") as exc_info:
            to_decimal("-1", "actualAmount")
        assert exc_info.value.field == "actualAmount"

    def test_repeated_recomputation_does_not_drift(self) -> None:
        """qty x unitCost computed many times stays exact"""
        qty = to_decimal(3)
        unit_cost = to_decimal(0.1)
        totals = {qty * unit_cost for _ in range(1000)}
        assert totals == {Decimal("0.3")}


# =============================================================================
# Identifiers
# =============================================================================


class TestNormalizeId:
    def test_plain_string_is_trimmed(self) -> None:
        assert normalize_id("  plan-1 ") == "plan-1"

    def test_native_forms_are_accepted(self) -> None:
        """UUIDs, ints, mappings and objects with .id all normalize"""
        value = uuid.uuid4()
        assert normalize_id(value) == str(value)
        assert normalize_id(42) == "42"
        assert normalize_id({"id": "item-7"}) == "item-7"

        class Loaded:
            id = "plan-9"

        assert normalize_id(Loaded()) == "plan-9"

    @pytest.mark.parametrize("value", [None, True, "", "   ", "has space", "../etc", "x" * 65, 3.5])
    def test_malformed_ids_are_validation_errors(self, value: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_id(value, "planId")
        assert exc_info.value.field == "planId"

    def test_generated_ids_are_valid_and_unique(self) -> None:
        """generate_id output passes normalization and does not repeat"""
        ids = {generate_id() for _ in range(200)}
        assert len(ids) == 200
        for value in ids:
            assert normalize_id(value) == value
            assert value[14] == "7"  # version nibble
