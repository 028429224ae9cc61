"""
Budget Projections - read-side views, listings and statistics

Pure functions over loaded plans and expense records. Nothing here writes.
Department-authored evidence (hodEvidence, from the item) and member
evidence (memberEvidence, from the expense record) stay in separate lists.

View models serialize with camelCase keys (``model_dump(by_alias=True)``).
"""

import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from budget_lifecycle.budget.audit import AuditEntry
from budget_lifecycle.budget.models import (
    BudgetItem,
    BudgetPlan,
    Evidence,
    ItemStatus,
    PlanStatus,
)
from budget_lifecycle.directory import Member
from budget_lifecycle.expense.models import Comparison, ExpenseRecord, SubmissionStatus
from budget_lifecycle.kernel.errors import ValidationError
from budget_lifecycle.kernel.settings import EngineSettings

ZERO = Decimal("0")

VIEW_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}

# Pseudo-status accepted by event listings
COMPLETED_FILTER = "completed"


class AssigneeInfo(BaseModel):
    member_id: str
    user_id: str
    full_name: str = ""
    email: str = ""

    model_config = VIEW_CONFIG


class ItemView(BaseModel):
    """An item merged with its expense record"""

    item_id: str
    category: str
    name: str
    unit: str
    qty: Decimal
    unit_cost: Decimal
    total: Decimal
    note: str
    status: ItemStatus
    feedback: str
    hod_evidence: list[Evidence] = Field(default_factory=list)
    member_evidence: list[Evidence] = Field(default_factory=list)
    assigned_to: str | None = None
    assigned_at: datetime | None = None
    assigned_by: str | None = None
    assigned_to_info: AssigneeInfo | None = None
    actual_amount: Decimal = ZERO
    estimated_total: Decimal = ZERO
    is_paid: bool = False
    member_note: str = ""
    comparison: Comparison | None = None
    reported_by: str | None = None
    reported_at: datetime | None = None
    submitted_status: SubmissionStatus = SubmissionStatus.DRAFT

    model_config = VIEW_CONFIG


class BudgetView(BaseModel):
    """A plan ready for display"""

    id: str
    event_id: str
    department_id: str
    name: str
    currency: str
    status: PlanStatus
    version: int
    is_public: bool
    categories: list[str]
    items: list[ItemView]
    audit: list[AuditEntry]
    total_cost: Decimal
    total_actual: Decimal
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    sent_to_members_at: datetime | None = None
    sent_to_members_by: str | None = None

    model_config = VIEW_CONFIG


class PlanSummary(BaseModel):
    """One row of a budget listing"""

    id: str
    event_id: str
    department_id: str
    name: str
    status: PlanStatus
    currency: str
    is_public: bool
    total_cost: Decimal
    total_items: int
    submitted_count: int
    all_items_submitted: bool
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None

    model_config = VIEW_CONFIG


class Page(BaseModel):
    items: list[PlanSummary]
    page: int
    limit: int
    total: int
    pages: int

    model_config = VIEW_CONFIG


class PlanStatistics(BaseModel):
    """Estimated vs actual figures of one plan"""

    department_id: str
    plan_id: str
    plan_name: str
    status: PlanStatus
    estimated: Decimal
    actual: Decimal
    paid: Decimal
    difference: Decimal

    model_config = VIEW_CONFIG


class BudgetStatistics(BaseModel):
    event_id: str
    department_id: str | None = None
    total_estimated: Decimal
    total_actual: Decimal
    total_paid: Decimal
    total_difference: Decimal
    by_status: dict[str, int]
    departments: list[PlanStatistics]

    model_config = VIEW_CONFIG


# =============================================================================
# Views
# =============================================================================


def build_item_view(
    item: BudgetItem,
    record: ExpenseRecord | None,
    members: Mapping[str, Member],
) -> ItemView:
    """
    Merge one item with its expense record (if any)

    Without a record the expense fields take their defaults: actualAmount 0,
    no member evidence, comparison null, submittedStatus draft.
    """
    info = None
    if item.assigned_to and item.assigned_to in members:
        member = members[item.assigned_to]
        info = AssigneeInfo(
            member_id=member.member_id,
            user_id=member.user_id,
            full_name=member.full_name,
            email=member.email,
        )

    view = ItemView(
        item_id=item.item_id,
        category=item.category,
        name=item.name,
        unit=item.unit,
        qty=item.qty,
        unit_cost=item.unit_cost,
        total=item.total,
        note=item.note,
        status=item.status,
        feedback=item.feedback,
        hod_evidence=list(item.evidence),
        assigned_to=item.assigned_to,
        assigned_at=item.assigned_at,
        assigned_by=item.assigned_by,
        assigned_to_info=info,
        estimated_total=item.total,
    )
    if record is not None:
        view.member_evidence = list(record.evidence)
        view.actual_amount = record.actual_amount
        view.estimated_total = record.estimated_total
        view.is_paid = record.is_paid
        view.member_note = record.member_note
        view.comparison = record.comparison
        view.reported_by = record.reported_by
        view.reported_at = record.reported_at
        view.submitted_status = record.submitted_status
    return view


def build_budget_view(
    plan: BudgetPlan,
    records: Mapping[str, ExpenseRecord],
    members: Mapping[str, Member],
) -> BudgetView:
    """
    Assemble the display form of a plan

    Args:
        plan: Plan to render
        records: Expense records of the plan keyed by item_id
        members: Assignees from a batch lookup, keyed by member_id
    """
    items = [
        build_item_view(item, records.get(item_id), members)
        for item_id, item in plan.items.items()
    ]
    return BudgetView(
        id=plan.id,
        event_id=plan.event_id,
        department_id=plan.department_id,
        name=plan.name,
        currency=plan.currency,
        status=plan.status,
        version=plan.version,
        is_public=plan.is_public,
        categories=list(plan.categories),
        items=items,
        audit=list(plan.audit),
        total_cost=plan.total_cost(),
        total_actual=sum((view.actual_amount for view in items), ZERO),
        created_by=plan.created_by,
        created_at=plan.created_at,
        updated_at=plan.updated_at,
        submitted_at=plan.submitted_at,
        reviewed_by=plan.reviewed_by,
        reviewed_at=plan.reviewed_at,
        sent_to_members_at=plan.sent_to_members_at,
        sent_to_members_by=plan.sent_to_members_by,
    )


def assignee_ids(plan: BudgetPlan) -> set[str]:
    return {item.assigned_to for item in plan.items.values() if item.assigned_to}


# =============================================================================
# Listings
# =============================================================================


def submitted_count(plan: BudgetPlan, records: Mapping[str, ExpenseRecord]) -> int:
    return sum(
        1
        for item_id in plan.items
        if item_id in records and records[item_id].is_submitted
    )


def is_completed(plan: BudgetPlan, records: Mapping[str, ExpenseRecord]) -> bool:
    """Sent to members and every item's expense report submitted"""
    return (
        plan.status == PlanStatus.SENT_TO_MEMBERS
        and submitted_count(plan, records) == len(plan.items)
    )


def summarize_plan(plan: BudgetPlan, records: Mapping[str, ExpenseRecord]) -> PlanSummary:
    count = submitted_count(plan, records)
    return PlanSummary(
        id=plan.id,
        event_id=plan.event_id,
        department_id=plan.department_id,
        name=plan.name,
        status=plan.status,
        currency=plan.currency,
        is_public=plan.is_public,
        total_cost=plan.total_cost(),
        total_items=len(plan.items),
        submitted_count=count,
        all_items_submitted=count == len(plan.items),
        created_at=plan.created_at,
        updated_at=plan.updated_at,
        submitted_at=plan.submitted_at,
    )


def normalize_paging(page: Any, limit: Any, settings: EngineSettings) -> tuple[int, int]:
    """
    Clamp paging parameters: page >= 1, 1 <= limit <= max_page_size

    Raises:
        ValidationError: If page or limit is not an integer
    """
    try:
        page_number = 1 if page is None else int(page)
        page_size = settings.default_page_size if limit is None else int(limit)
    except (TypeError, ValueError) as e:
        raise ValidationError("page and limit must be integers", field="page") from e
    return max(page_number, 1), min(max(page_size, 1), settings.max_page_size)


def paginate(summaries: list[PlanSummary], page: int, limit: int) -> Page:
    total = len(summaries)
    start = (page - 1) * limit
    return Page(
        items=summaries[start : start + limit],
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if total else 0,
    )


# =============================================================================
# Statistics
# =============================================================================


def compute_statistics(
    event_id: str,
    plans: Iterable[BudgetPlan],
    records_by_plan: Mapping[str, Mapping[str, ExpenseRecord]],
    department_id: str | None = None,
) -> BudgetStatistics:
    """
    Estimated, actual and paid totals for an event (or one department of it)

    ``difference`` is actual minus estimated; paid sums actual amounts of
    records flagged paid.
    """
    rows: list[PlanStatistics] = []
    by_status: dict[str, int] = {}
    for plan in plans:
        if department_id is not None and plan.department_id != department_id:
            continue
        records = records_by_plan.get(plan.id, {})
        estimated = plan.total_cost()
        actual = sum((r.actual_amount for r in records.values()), ZERO)
        paid = sum((r.actual_amount for r in records.values() if r.is_paid), ZERO)
        rows.append(
            PlanStatistics(
                department_id=plan.department_id,
                plan_id=plan.id,
                plan_name=plan.name,
                status=plan.status,
                estimated=estimated,
                actual=actual,
                paid=paid,
                difference=actual - estimated,
            )
        )
        by_status[plan.status.value] = by_status.get(plan.status.value, 0) + 1

    total_estimated = sum((row.estimated for row in rows), ZERO)
    total_actual = sum((row.actual for row in rows), ZERO)
    return BudgetStatistics(
        event_id=event_id,
        department_id=department_id,
        total_estimated=total_estimated,
        total_actual=total_actual,
        total_paid=sum((row.paid for row in rows), ZERO),
        total_difference=total_actual - total_estimated,
        by_status=by_status,
        departments=rows,
    )
