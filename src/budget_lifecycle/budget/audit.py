"""
Audit log - append-only action history of a budget plan

Every mutating plan operation appends exactly one entry. Entries are never
edited or removed; ``append_entry`` is the only writer.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from budget_lifecycle.budget.models import BudgetPlan


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    RECALLED = "recalled"
    REVIEW_SAVED = "review_saved"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    REVIEW_PENDING = "review_pending"
    CATEGORIES_UPDATED = "categories_updated"
    SENT_TO_MEMBERS = "sent_to_members"
    PUBLIC = "public"
    PRIVATE = "private"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"


class AuditEntry(BaseModel):
    """One recorded action: when, by whom, what, and an optional comment"""

    at: datetime
    by: str | None = None
    action: AuditAction
    comment: str = ""

    model_config = {"frozen": True}


def append_entry(
    plan: "BudgetPlan",
    at: datetime,
    by: str | None,
    action: AuditAction,
    comment: str = "",
) -> AuditEntry:
    """
    Append an entry to the plan's audit trail

    Args:
        plan: Plan being mutated (in memory)
        at: Timestamp of the action
        by: User id of the actor
        action: What happened
        comment: Free-form note

    Returns:
        The new entry
    """
    entry = AuditEntry(at=at, by=by, action=action, comment=comment)
    plan.audit.append(entry)
    return entry

