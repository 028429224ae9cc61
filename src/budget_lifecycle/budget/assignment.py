"""
AssignmentManager - who spends on which approved item

The only writer of an item's assigned_to/assigned_at/assigned_by. Items can
be assigned only while the plan is approved; SendToMembers reads the result.
"""

from typing import Any

from budget_lifecycle.budget.audit import AuditAction, append_entry
from budget_lifecycle.budget.models import BudgetPlan
from budget_lifecycle.budget.permissions import Actor, Operation, require
from budget_lifecycle.budget.workflow import WorkflowEngine
from budget_lifecycle.directory import MembershipDirectory
from budget_lifecycle.kernel.errors import ValidationError
from budget_lifecycle.kernel.ids import normalize_id
from budget_lifecycle.kernel.logging import get_logger
from budget_lifecycle.notify import NotificationKind, NotifierBridge

logger = get_logger(__name__)


class AssignmentManager:
    def __init__(
        self,
        workflow: WorkflowEngine,
        memberships: MembershipDirectory,
        notifier: NotifierBridge,
    ) -> None:
        self.workflow = workflow
        self.memberships = memberships
        self.notifier = notifier

    def assign_item(
        self,
        plan_id: Any,
        item_id: Any,
        assignee: Any,
        actor: Actor,
    ) -> BudgetPlan:
        """
        Assign an item to a member, or unassign it with ``assignee=None``

        Args:
            plan_id: Plan holding the item
            item_id: Item to assign
            assignee: Member id (or None to clear the assignment)
            actor: Requester, must lead the plan's department

        Returns:
            The saved plan

        Raises:
            Forbidden: If the requester is not the department lead
            InvalidState: If the plan is not approved
            BudgetItemNotFound: If the item is not in the plan
            ValidationError: If the assignee is not an active member of the
                plan's department
        """
        plan = self.workflow.load(plan_id)
        require(actor, plan.department_id, Operation.ASSIGN_ITEM)
        self.workflow.ensure_assignable(plan)
        item = plan.get_item(normalize_id(item_id, "itemId"))

        member_id: str | None = None
        if assignee is not None:
            member_id = normalize_id(assignee, "memberId")
            member = self.memberships.resolve_member(
                member_id, plan.event_id, plan.department_id
            )
            if member is None:
                raise ValidationError("Member not found in this department", field="assignee")

        now = self.workflow.time_provider.now()
        item.assigned_to = member_id
        item.assigned_at = now if member_id else None
        item.assigned_by = actor.user_id if member_id else None
        plan.updated_at = now
        append_entry(
            plan,
            now,
            actor.user_id,
            AuditAction.ASSIGNED if member_id else AuditAction.UNASSIGNED,
            f"{item.item_id} -> {member_id}" if member_id else item.item_id,
        )
        self.workflow.store.save(plan)
        logger.info(
            "Item assignment changed",
            plan_id=plan.id,
            item_id=item.item_id,
            assigned=member_id is not None,
        )

        if member_id:
            self.notifier.emit(
                NotificationKind.ITEM_ASSIGNED,
                plan.event_id,
                plan.department_id,
                plan.id,
                item.item_id,
                member_id,
            )
        return plan
