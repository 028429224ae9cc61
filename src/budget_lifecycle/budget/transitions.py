"""
Budget plan state machine

The transition table is the single authority on which plan operations are
legal from which status. ``next_status`` either returns the target status or
raises InvalidState; every plan-mutating operation goes through it.

Review operations have a computed target (the aggregate rule), so the table
lists their allowed targets and the caller passes the derived one.
"""

from enum import Enum

from budget_lifecycle.budget.models import PlanStatus
from budget_lifecycle.kernel.errors import InvalidState


class PlanOperation(str, Enum):
    """Operations that read or change a plan's status"""

    SUBMIT = "submit"
    RECALL = "recall"
    SAVE_REVIEW_DRAFT = "save_review_draft"
    COMPLETE_REVIEW = "complete_review"
    SEND_TO_MEMBERS = "send_to_members"
    DELETE = "delete"
    UPDATE = "update"
    UPDATE_CATEGORIES = "update_categories"
    ASSIGN_ITEM = "assign_item"
    REPORT_EXPENSE = "report_expense"
    SUBMIT_EXPENSE = "submit_expense"


S = PlanStatus
REVIEW_OUTCOMES = frozenset({S.APPROVED, S.CHANGES_REQUESTED, S.SUBMITTED})
ALL_STATUSES = frozenset(S)

# operation -> (allowed source statuses, allowed target statuses)
# A target of None means the status is left unchanged.
TRANSITIONS: dict[PlanOperation, tuple[frozenset[PlanStatus], frozenset[PlanStatus] | None]] = {
    PlanOperation.SUBMIT: (
        frozenset({S.DRAFT, S.CHANGES_REQUESTED, S.SUBMITTED}),
        frozenset({S.SUBMITTED}),
    ),
    PlanOperation.RECALL: (frozenset({S.SUBMITTED}), frozenset({S.DRAFT})),
    PlanOperation.SAVE_REVIEW_DRAFT: (
        frozenset({S.SUBMITTED, S.CHANGES_REQUESTED}),
        REVIEW_OUTCOMES,
    ),
    PlanOperation.COMPLETE_REVIEW: (
        frozenset({S.SUBMITTED, S.CHANGES_REQUESTED}),
        REVIEW_OUTCOMES,
    ),
    PlanOperation.SEND_TO_MEMBERS: (frozenset({S.APPROVED}), frozenset({S.SENT_TO_MEMBERS})),
    PlanOperation.DELETE: (frozenset({S.DRAFT, S.CHANGES_REQUESTED}), None),
    PlanOperation.UPDATE: (frozenset({S.DRAFT, S.CHANGES_REQUESTED, S.SUBMITTED}), None),
    PlanOperation.UPDATE_CATEGORIES: (ALL_STATUSES - {S.LOCKED}, None),
    PlanOperation.ASSIGN_ITEM: (frozenset({S.APPROVED}), None),
    PlanOperation.REPORT_EXPENSE: (frozenset({S.APPROVED, S.SENT_TO_MEMBERS}), None),
    PlanOperation.SUBMIT_EXPENSE: (frozenset({S.APPROVED, S.SENT_TO_MEMBERS}), None),
}


def _rejection_message(current: PlanStatus, operation: PlanOperation) -> str:
    if operation == PlanOperation.DELETE:
        if current == S.SUBMITTED:
            return "Cannot delete a budget that is submitted and awaiting approval"
        return f"Cannot delete a budget that has already been decided ({current.value})"
    if operation == PlanOperation.SUBMIT and current in {S.APPROVED, S.SENT_TO_MEMBERS, S.LOCKED}:
        return f"Budget is already {current.value} and cannot be resubmitted"
    if operation == PlanOperation.UPDATE_CATEGORIES:
        return "Budget is locked"
    if operation == PlanOperation.ASSIGN_ITEM:
        return f"Items can only be assigned on an approved budget (current: {current.value})"
    return f"Cannot {operation.value.replace('_', ' ')} a budget in status {current.value}"


def can_apply(current: PlanStatus, operation: PlanOperation) -> bool:
    sources, _ = TRANSITIONS[operation]
    return current in sources


def ensure_allowed(current: PlanStatus, operation: PlanOperation) -> None:
    """
    Raises:
        InvalidState: If the operation is not allowed from ``current``
    """
    if not can_apply(current, operation):
        raise InvalidState(current.value, _rejection_message(current, operation))


def next_status(
    current: PlanStatus,
    operation: PlanOperation,
    outcome: PlanStatus | None = None,
) -> PlanStatus:
    """
    Resolve the status a plan moves to

    Args:
        current: Status the plan is in
        operation: Operation being applied
        outcome: Computed target for review operations

    Returns:
        The next status (``current`` for operations that do not move it)

    Raises:
        InvalidState: If the operation is illegal from ``current``
        ValueError: If a review outcome outside the table is supplied
    """
    ensure_allowed(current, operation)
    _, targets = TRANSITIONS[operation]
    if targets is None:
        return current
    if len(targets) == 1 and outcome is None:
        return next(iter(targets))
    if outcome is None or outcome not in targets:
        raise ValueError(f"{operation.value} cannot lead to {outcome}")
    return outcome
