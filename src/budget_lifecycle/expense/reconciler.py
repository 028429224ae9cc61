"""
ExpenseReconciler - actual spending against approved estimates

Members (or their department lead) report what an item really cost, attach
receipts, and submit the report once complete. Each operation reads the
plan for authorization and state, then does one read-modify-write on a
single ExpenseRecord; the plan itself is never written here.
"""

from decimal import Decimal
from typing import Any

from budget_lifecycle.budget.commands import ReportExpense, parse_payload
from budget_lifecycle.budget.invariants import sanitize_evidence
from budget_lifecycle.budget.models import BudgetItem, BudgetPlan, PlanStatus
from budget_lifecycle.budget.permissions import Actor, Operation, require
from budget_lifecycle.budget.transitions import PlanOperation, ensure_allowed
from budget_lifecycle.budget.workflow import WorkflowEngine
from budget_lifecycle.directory import Role
from budget_lifecycle.expense.models import (
    ExpenseRecord,
    SubmissionResult,
    SubmissionStatus,
)
from budget_lifecycle.expense.store import ExpenseStore
from budget_lifecycle.kernel.errors import (
    ExpenseNotFound,
    Forbidden,
    InvalidState,
    ValidationError,
)
from budget_lifecycle.kernel.ids import normalize_id
from budget_lifecycle.kernel.logging import get_logger
from budget_lifecycle.kernel.metrics import expense_submissions_total
from budget_lifecycle.kernel.money import to_decimal
from budget_lifecycle.notify import NotificationKind, NotifierBridge

logger = get_logger(__name__)


class ExpenseReconciler:
    def __init__(
        self,
        workflow: WorkflowEngine,
        store: ExpenseStore,
        notifier: NotifierBridge,
    ) -> None:
        """
        Args:
            workflow: Source of plans and plan-state predicates
            store: Expense record persistence
            notifier: Outward notification bridge
        """
        self.workflow = workflow
        self.store = store
        self.notifier = notifier

    @property
    def time_provider(self):
        return self.workflow.time_provider

    def _load_item(self, plan_id: Any, item_id: Any) -> tuple[BudgetPlan, BudgetItem]:
        plan = self.workflow.load(plan_id)
        return plan, plan.get_item(normalize_id(item_id, "itemId"))

    @staticmethod
    def _require_assignee(item: BudgetItem, actor: Actor) -> None:
        if item.assigned_to is None or actor.member_id != item.assigned_to:
            raise Forbidden("Only the member assigned to this item may do this")

    def report_expense(
        self,
        plan_id: Any,
        item_id: Any,
        payload: dict[str, Any] | ReportExpense,
        actor: Actor,
    ) -> ExpenseRecord:
        """
        Create or update the expense record of an item

        Only fields present in the payload (actualAmount, evidence,
        memberNote, isPaid) are applied. estimatedTotal, reportedBy and
        reportedAt are refreshed on every report. A submitted report stays
        submitted; reporting again only corrects its fields.

        Authorization: the department lead may always report. Other members
        must hold the item: on an approved plan the item must already be
        assigned to them; once sent to members, an unassigned item is open to
        any member of the department.

        Raises:
            InvalidState: If the plan does not accept expenses or the item is
                unassigned on an approved plan
            Forbidden: If the requester may not report on this item
            ValidationError: If the payload is malformed
        """
        plan, item = self._load_item(plan_id, item_id)
        require(actor, plan.department_id, Operation.REPORT_EXPENSE)
        self.workflow.ensure_accepts_expenses(plan)

        if actor.role != Role.HOD:
            if actor.member_id is None:
                raise Forbidden("Requester is not an active member of this event")
            if item.assigned_to is None and plan.status == PlanStatus.APPROVED:
                raise InvalidState(plan.status.value, "Item is not assigned to any member yet")
            if item.assigned_to is not None and item.assigned_to != actor.member_id:
                raise Forbidden("Item is assigned to another member")

        command = parse_payload(ReportExpense, payload)
        fields = command.model_fields_set
        now = self.time_provider.now()

        record = self.store.get(plan.id, item.item_id)
        if record is None:
            record = ExpenseRecord(
                plan_id=plan.id,
                item_id=item.item_id,
                event_id=plan.event_id,
                department_id=plan.department_id,
                created_at=now,
                updated_at=now,
            )

        if "actual_amount" in fields:
            record.actual_amount = to_decimal(command.actual_amount, "actualAmount", Decimal("0"))
        if "evidence" in fields:
            record.evidence = sanitize_evidence(command.evidence)
        if "member_note" in fields:
            record.member_note = (command.member_note or "").strip()
        if "is_paid" in fields and command.is_paid is not None:
            record.is_paid = command.is_paid

        record.estimated_total = item.total
        record.reported_by = actor.member_id or actor.user_id
        record.reported_at = now
        record.updated_at = now
        self.store.save(record)

        logger.info(
            "Expense reported",
            plan_id=plan.id,
            item_id=item.item_id,
            comparison=record.comparison.value if record.comparison else None,
        )
        self.notifier.emit(
            NotificationKind.EXPENSE_REPORTED,
            plan.event_id,
            plan.department_id,
            plan.id,
            item.item_id,
            actor.member_id,
        )
        return record

    def toggle_paid(self, plan_id: Any, item_id: Any, actor: Actor) -> ExpenseRecord:
        """
        Flip the paid flag of an existing expense record

        Raises:
            ExpenseNotFound: If nothing has been reported for the item yet
        """
        plan, item = self._load_item(plan_id, item_id)
        require(actor, plan.department_id, Operation.TOGGLE_PAID)

        record = self.store.get(plan.id, item.item_id)
        if record is None:
            raise ExpenseNotFound(plan.id, item.item_id)

        record.is_paid = not record.is_paid
        record.updated_at = self.time_provider.now()
        self.store.save(record)
        logger.info(
            "Expense paid flag toggled",
            plan_id=plan.id,
            item_id=item.item_id,
            is_paid=record.is_paid,
        )
        return record

    def submit_expense(self, plan_id: Any, item_id: Any, actor: Actor) -> SubmissionResult:
        """
        Mark the assignee's expense report as submitted

        Returns:
            The record plus whether every item of the plan is now submitted

        Raises:
            InvalidState: If the plan does not accept expenses or the item is unassigned
            Forbidden: If the requester is not the assignee
            ExpenseNotFound: If nothing has been reported yet
            ValidationError: If neither an amount nor evidence was reported
        """
        plan, item = self._load_item(plan_id, item_id)
        require(actor, plan.department_id, Operation.SUBMIT_EXPENSE)
        ensure_allowed(plan.status, PlanOperation.SUBMIT_EXPENSE)
        if item.assigned_to is None:
            raise InvalidState(plan.status.value, "Item is not assigned to any member yet")
        self._require_assignee(item, actor)

        record = self.store.get(plan.id, item.item_id)
        if record is None:
            raise ExpenseNotFound(plan.id, item.item_id)
        if not record.is_submittable():
            raise ValidationError(
                "Report an actual amount or attach evidence before submitting",
                field="actualAmount",
            )

        record.submitted_status = SubmissionStatus.SUBMITTED
        record.updated_at = self.time_provider.now()
        self.store.save(record)
        expense_submissions_total.labels(action="submitted").inc()

        self.notifier.emit(
            NotificationKind.EXPENSE_SUBMITTED,
            plan.event_id,
            plan.department_id,
            plan.id,
            item.item_id,
            actor.member_id,
        )
        return SubmissionResult(
            record=record,
            all_items_submitted=self.all_items_submitted(plan),
        )

    def undo_submit_expense(self, plan_id: Any, item_id: Any, actor: Actor) -> ExpenseRecord:
        """
        Withdraw a submitted expense report back to draft

        Raises:
            ExpenseNotFound: If nothing has been reported yet
            InvalidState: If the report is not submitted
            Forbidden: If the requester is not the assignee
        """
        plan, item = self._load_item(plan_id, item_id)
        require(actor, plan.department_id, Operation.UNDO_SUBMIT_EXPENSE)

        record = self.store.get(plan.id, item.item_id)
        if record is None:
            raise ExpenseNotFound(plan.id, item.item_id)
        if not record.is_submitted:
            raise InvalidState(record.submitted_status.value, "Expense report is not submitted")
        self._require_assignee(item, actor)

        record.submitted_status = SubmissionStatus.DRAFT
        record.updated_at = self.time_provider.now()
        self.store.save(record)
        expense_submissions_total.labels(action="undone").inc()
        return record

    def all_items_submitted(self, plan: BudgetPlan) -> bool:
        """True when every item of the plan has a submitted expense report"""
        records = self.store.list_for_plan(plan.id)
        return all(
            item_id in records and records[item_id].is_submitted for item_id in plan.items
        )
