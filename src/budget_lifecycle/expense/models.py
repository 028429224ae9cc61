"""
Expense Models - one reconciliation record per budget item

An ExpenseRecord holds what was actually spent on an item, the member's own
evidence and note, and whether it was paid. It is stored apart from the
plan and joined onto item views at read time.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from budget_lifecycle.budget.models import Evidence


class SubmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class Comparison(str, Enum):
    GREATER = "greater"
    LESS = "less"
    EQUAL = "equal"


def compare_amounts(actual: Decimal, estimated: Decimal) -> Comparison | None:
    """
    Relationship between actual and estimated cost

    Returns None until something has actually been spent.
    """
    if actual <= 0:
        return None
    if actual > estimated:
        return Comparison.GREATER
    if actual < estimated:
        return Comparison.LESS
    return Comparison.EQUAL


class ExpenseRecord(BaseModel):
    """
    Actual spending reported against one (plan, item) pair

    ``comparison`` is derived from actual_amount and estimated_total; call
    ``refresh_comparison`` after changing either (the store does it on save).
    """

    plan_id: str
    item_id: str
    event_id: str
    department_id: str
    actual_amount: Decimal = Field(default=Decimal("0"), ge=0)
    estimated_total: Decimal = Field(default=Decimal("0"), ge=0)
    evidence: list[Evidence] = Field(default_factory=list)
    member_note: str = ""
    is_paid: bool = False
    comparison: Comparison | None = None
    reported_by: str | None = None
    reported_at: datetime | None = None
    submitted_status: SubmissionStatus = SubmissionStatus.DRAFT
    created_at: datetime
    updated_at: datetime

    revision: int = 0

    def refresh_comparison(self) -> Comparison | None:
        self.comparison = compare_amounts(self.actual_amount, self.estimated_total)
        return self.comparison

    def is_submittable(self) -> bool:
        """Something was spent or at least one piece of evidence is attached"""
        return self.actual_amount > 0 or bool(self.evidence)

    @property
    def is_submitted(self) -> bool:
        return self.submitted_status == SubmissionStatus.SUBMITTED


class SubmissionResult(BaseModel):
    """Outcome of submitting one expense report"""

    record: ExpenseRecord
    all_items_submitted: bool
