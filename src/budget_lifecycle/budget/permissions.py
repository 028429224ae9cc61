"""
Permission matrix

All role and ownership rules in one function:

    authorize(role, requester_dept, target_dept, operation) -> Decision

Finer, state-dependent checks (is the requester the item's assignee, is a
plan public) are applied by the operations themselves on top of the
matrix decision.
"""

from dataclasses import dataclass
from enum import Enum

from budget_lifecycle.directory import Role
from budget_lifecycle.kernel.errors import Forbidden


class Operation(str, Enum):
    """Every operation of the engine's catalogue"""

    GET_BUDGET = "getBudget"
    CREATE_BUDGET = "createBudget"
    UPDATE_BUDGET = "updateBudget"
    SUBMIT_BUDGET = "submitBudget"
    RECALL_BUDGET = "recallBudget"
    DELETE_BUDGET = "deleteBudget"
    SAVE_REVIEW_DRAFT = "saveReviewDraft"
    COMPLETE_REVIEW = "completeReview"
    UPDATE_CATEGORIES = "updateCategories"
    SEND_TO_MEMBERS = "sendToMembers"
    UPDATE_VISIBILITY = "updateVisibility"
    ASSIGN_ITEM = "assignItem"
    REPORT_EXPENSE = "reportExpense"
    TOGGLE_PAID = "togglePaid"
    SUBMIT_EXPENSE = "submitExpense"
    UNDO_SUBMIT_EXPENSE = "undoSubmitExpense"
    LIST_FOR_DEPARTMENT = "listBudgetsForDepartment"
    LIST_FOR_EVENT = "listBudgetsForEvent"
    GET_STATISTICS = "getStatistics"


class Decision(str, Enum):
    ALLOW = "allow"
    PUBLIC_ONLY = "public_only"  # may only see plans flagged public
    DENY = "deny"


@dataclass(frozen=True)
class Actor:
    """A requester resolved against the directories"""

    user_id: str
    role: Role | None
    department_id: str | None = None
    member_id: str | None = None


READ_OPERATIONS = frozenset(
    {Operation.GET_BUDGET, Operation.LIST_FOR_DEPARTMENT, Operation.LIST_FOR_EVENT}
)

REVIEWER_OPERATIONS = frozenset(
    {
        Operation.SAVE_REVIEW_DRAFT,
        Operation.COMPLETE_REVIEW,
        Operation.UPDATE_VISIBILITY,
        Operation.TOGGLE_PAID,
        Operation.GET_STATISTICS,
    }
)

LEAD_OPERATIONS = frozenset(
    {
        Operation.CREATE_BUDGET,
        Operation.UPDATE_BUDGET,
        Operation.SUBMIT_BUDGET,
        Operation.RECALL_BUDGET,
        Operation.DELETE_BUDGET,
        Operation.UPDATE_CATEGORIES,
        Operation.SEND_TO_MEMBERS,
        Operation.ASSIGN_ITEM,
        Operation.REPORT_EXPENSE,
        Operation.TOGGLE_PAID,
        Operation.SUBMIT_EXPENSE,
        Operation.UNDO_SUBMIT_EXPENSE,
        Operation.GET_STATISTICS,
    }
)

MEMBER_OPERATIONS = frozenset(
    {
        Operation.REPORT_EXPENSE,
        Operation.SUBMIT_EXPENSE,
        Operation.UNDO_SUBMIT_EXPENSE,
        Operation.GET_STATISTICS,
    }
)


def authorize(
    role: Role | None,
    requester_dept: str | None,
    target_dept: str | None,
    operation: Operation,
) -> Decision:
    """
    Decide whether a role may perform an operation on a department's plans

    Args:
        role: Requester's event role (None when not a member of the event)
        requester_dept: Department the requester belongs to
        target_dept: Department owning the plan (None for event-wide reads)
        operation: Operation being attempted

    Returns:
        ALLOW, PUBLIC_ONLY (reads restricted to public plans) or DENY
    """
    if role is None:
        return Decision.DENY

    if role == Role.HOOC:
        if operation in REVIEWER_OPERATIONS or operation in READ_OPERATIONS:
            return Decision.ALLOW
        return Decision.DENY

    same_department = target_dept is not None and requester_dept == target_dept

    if operation == Operation.LIST_FOR_EVENT:
        # Non-reviewers see public plans plus their own department's
        return Decision.PUBLIC_ONLY
    if operation in READ_OPERATIONS:
        return Decision.ALLOW if same_department else Decision.PUBLIC_ONLY

    if role == Role.HOD:
        return Decision.ALLOW if same_department and operation in LEAD_OPERATIONS else Decision.DENY

    # Members without a recorded department are tolerated for expense work;
    # the assignee check narrows it down to their own items.
    member_scope = same_department or (requester_dept is None and target_dept is not None)
    if operation in MEMBER_OPERATIONS and member_scope:
        return Decision.ALLOW
    return Decision.DENY


def require(actor: Actor, target_dept: str | None, operation: Operation) -> Decision:
    """
    Authorize an actor, raising on DENY

    Returns:
        The non-deny decision (ALLOW or PUBLIC_ONLY)

    Raises:
        Forbidden: If the matrix denies the operation
    """
    decision = authorize(actor.role, actor.department_id, target_dept, operation)
    if decision == Decision.DENY:
        if actor.role is None:
            reason = "Requester is not a member of this event"
        elif operation in REVIEWER_OPERATIONS - LEAD_OPERATIONS:
            reason = "Only the organizing committee lead (HoOC) may perform this action"
        elif actor.role == Role.HOD and operation in LEAD_OPERATIONS:
            reason = "Only the lead of this department may perform this action"
        elif operation in LEAD_OPERATIONS - MEMBER_OPERATIONS:
            reason = "Only the department lead (HoD) may perform this action"
        else:
            reason = "Requester does not belong to this department"
        raise Forbidden(reason, operation=operation.value)
    return decision
