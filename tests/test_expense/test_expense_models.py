"""
Tests for expense record models
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from budget_lifecycle.budget.models import Evidence
from budget_lifecycle.expense.models import (
    Comparison,
    ExpenseRecord,
    SubmissionStatus,
    compare_amounts,
)

T0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def record(**kw) -> ExpenseRecord:
    fields = {
        "plan_id": "plan-1",
        "item_id": "item-1",
        "event_id": "evt-1",
        "department_id": "dep-logistics",
        "created_at": T0,
        "updated_at": T0,
    }
    fields.update(kw)
    return ExpenseRecord(**fields)


@pytest.mark.parametrize(
    ("actual", "estimated", "expected"),
    [
        ("150", "100", Comparison.GREATER),
        ("80", "100", Comparison.LESS),
        ("100", "100", Comparison.EQUAL),
        ("100.00", "100", Comparison.EQUAL),
        ("0", "100", None),
        ("50", "0", Comparison.GREATER),
    ],
)
def test_compare_amounts(actual: str, estimated: str, expected: Comparison | None) -> None:
    assert compare_amounts(Decimal(actual), Decimal(estimated)) == expected


class TestExpenseRecord:
    def test_defaults(self) -> None:
        r = record()
        assert r.actual_amount == Decimal("0")
        assert r.submitted_status == SubmissionStatus.DRAFT
        assert r.comparison is None
        assert r.is_submitted is False
        assert r.revision == 0

    def test_refresh_comparison(self) -> None:
        r = record(actual_amount=Decimal("120"), estimated_total=Decimal("100"))
        assert r.refresh_comparison() == Comparison.GREATER
        assert r.comparison == Comparison.GREATER

    def test_submittable_needs_amount_or_evidence(self) -> None:
        assert record().is_submittable() is False
        assert record(member_note="paid in cash").is_submittable() is False
        assert record(actual_amount=Decimal("1")).is_submittable() is True
        assert record(evidence=[Evidence(url="https://x/r.png")]).is_submittable() is True

    def test_negative_amounts_are_rejected(self) -> None:
        with pytest.raises(ValueError):
            record(actual_amount=Decimal("-1"))
