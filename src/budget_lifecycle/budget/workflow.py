"""
WorkflowEngine - budget plan authoring, submission and review

Each operation follows the same shape:
1. Load the plan (BudgetNotFound if absent)
2. Authorize through the permission matrix
3. Check the current status against the transition table
4. Mutate the plan in memory and append one audit entry
5. Save with a revision check
6. Fire notifications (best-effort)
"""

from typing import Any

from budget_lifecycle.budget.audit import AuditAction, append_entry
from budget_lifecycle.budget.commands import CreateBudget, UpdateBudget, parse_payload
from budget_lifecycle.budget.invariants import (
    categories_from_items,
    derive_plan_status,
    merge_decisions,
    normalize_categories,
    normalize_for_submit,
    normalize_items,
    parse_decisions,
    validate_visibility_flag,
)
from budget_lifecycle.budget.models import BudgetPlan, PlanStatus
from budget_lifecycle.budget.permissions import Actor, Operation, require
from budget_lifecycle.budget.store import BudgetStore
from budget_lifecycle.budget.transitions import (
    PlanOperation,
    ensure_allowed,
    next_status,
)
from budget_lifecycle.kernel.errors import BudgetNotFound, ValidationError
from budget_lifecycle.kernel.ids import generate_id, normalize_id
from budget_lifecycle.kernel.logging import get_logger
from budget_lifecycle.kernel.metrics import record_transition
from budget_lifecycle.kernel.settings import EngineSettings
from budget_lifecycle.kernel.time import TimeProvider
from budget_lifecycle.notify import NotificationKind, NotifierBridge

logger = get_logger(__name__)

REVIEW_ACTIONS = {
    PlanStatus.APPROVED: AuditAction.APPROVED,
    PlanStatus.CHANGES_REQUESTED: AuditAction.CHANGES_REQUESTED,
    PlanStatus.SUBMITTED: AuditAction.REVIEW_PENDING,
}


class WorkflowEngine:
    """
    Owner of the plan status state machine

    AssignmentManager and ExpenseReconciler use ``load`` and the state
    predicates below instead of reading statuses themselves.
    """

    def __init__(
        self,
        store: BudgetStore,
        time_provider: TimeProvider,
        settings: EngineSettings,
        notifier: NotifierBridge,
    ) -> None:
        """
        Args:
            store: Plan persistence
            time_provider: For timestamps (injectable for testing)
            settings: Engine defaults
            notifier: Outward notification bridge
        """
        self.store = store
        self.time_provider = time_provider
        self.settings = settings
        self.notifier = notifier

    # =========================================================================
    # Loading and state predicates
    # =========================================================================

    def load(self, plan_id: Any) -> BudgetPlan:
        """
        Raises:
            ValidationError: If plan_id is malformed
            BudgetNotFound: If no such plan exists
        """
        plan_id = normalize_id(plan_id, "planId")
        plan = self.store.get(plan_id)
        if plan is None:
            raise BudgetNotFound(plan_id)
        return plan

    @staticmethod
    def ensure_assignable(plan: BudgetPlan) -> None:
        ensure_allowed(plan.status, PlanOperation.ASSIGN_ITEM)

    @staticmethod
    def ensure_accepts_expenses(plan: BudgetPlan) -> None:
        ensure_allowed(plan.status, PlanOperation.REPORT_EXPENSE)

    def _move(
        self,
        plan: BudgetPlan,
        operation: PlanOperation,
        actor: Actor,
        action: AuditAction,
        comment: str = "",
        outcome: PlanStatus | None = None,
    ) -> None:
        previous = plan.status
        plan.status = next_status(previous, operation, outcome)
        now = self.time_provider.now()
        plan.updated_at = now
        append_entry(plan, now, actor.user_id, action, comment)
        record_transition(previous.value, plan.status.value)
        if previous != plan.status:
            logger.info(
                "Budget status changed",
                plan_id=plan.id,
                from_status=previous.value,
                to_status=plan.status.value,
            )

    # =========================================================================
    # Authoring
    # =========================================================================

    def create(
        self,
        event_id: str,
        department_id: str,
        payload: dict[str, Any] | CreateBudget,
        actor: Actor,
    ) -> BudgetPlan:
        """
        Create a plan in draft

        Args:
            event_id: Event the plan belongs to (already verified to exist)
            department_id: Owning department (already verified)
            payload: name, currency, categories, items
            actor: Requester

        Returns:
            The stored plan

        Raises:
            Forbidden: If the requester is not the department lead
            ValidationError: If name is missing or no valid item is supplied
        """
        require(actor, department_id, Operation.CREATE_BUDGET)
        command = parse_payload(CreateBudget, payload)

        name = (command.name or "").strip()
        if not name:
            raise ValidationError("Budget name is required", field="name")
        if command.items is None:
            raise ValidationError("items is required", field="items")
        items = normalize_items(command.items, self.settings)

        now = self.time_provider.now()
        plan = BudgetPlan(
            id=generate_id(),
            event_id=event_id,
            department_id=department_id,
            name=name,
            currency=(command.currency or self.settings.default_currency).strip().upper(),
            categories=normalize_categories(command.categories) or categories_from_items(items),
            items=items,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        append_entry(plan, now, actor.user_id, AuditAction.CREATED, "Budget created")
        self.store.insert(plan)
        logger.info("Budget created", plan_id=plan.id, item_count=len(plan.items))
        return plan

    def update(
        self,
        plan_id: Any,
        payload: dict[str, Any] | UpdateBudget,
        actor: Actor,
    ) -> BudgetPlan:
        """
        Edit a plan that has not been decided yet

        Items matched by itemId keep their review decision, feedback and
        assignment unless the payload overrides them. The status is left
        alone; a submitted plan stays submitted until resubmitted.

        Raises:
            InvalidState: If the plan is approved, sent to members or locked
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.UPDATE_BUDGET)
        command = parse_payload(UpdateBudget, payload)
        ensure_allowed(plan.status, PlanOperation.UPDATE)

        if command.name is not None:
            name = command.name.strip()
            if not name:
                raise ValidationError("Budget name cannot be empty", field="name")
            plan.name = name
        if command.currency is not None and command.currency.strip():
            plan.currency = command.currency.strip().upper()
        if command.items is not None:
            plan.items = normalize_items(command.items, self.settings, plan.items)
        if command.categories is not None:
            plan.categories = normalize_categories(command.categories)

        self._move(plan, PlanOperation.UPDATE, actor, AuditAction.UPDATED, "Budget updated")
        return self.store.save(plan)

    def update_categories(self, plan_id: Any, categories: Any, actor: Actor) -> BudgetPlan:
        """
        Replace the plan's category list (blank entries dropped)

        Raises:
            InvalidState: If the plan is locked
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.UPDATE_CATEGORIES)
        ensure_allowed(plan.status, PlanOperation.UPDATE_CATEGORIES)
        plan.categories = normalize_categories(categories)
        self._move(
            plan,
            PlanOperation.UPDATE_CATEGORIES,
            actor,
            AuditAction.CATEGORIES_UPDATED,
            ", ".join(plan.categories),
        )
        return self.store.save(plan)

    def delete(self, plan_id: Any, actor: Actor) -> BudgetPlan:
        """
        Delete a plan still in draft or changes_requested

        Returns:
            The plan as it was before deletion

        Raises:
            InvalidState: "awaiting approval" for submitted plans,
                "already decided" for approved/sent/locked ones
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.DELETE_BUDGET)
        ensure_allowed(plan.status, PlanOperation.DELETE)
        self.store.delete(plan)
        logger.info("Budget deleted", plan_id=plan.id, status=plan.status.value)
        return plan

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, plan_id: Any, actor: Actor) -> BudgetPlan:
        """
        Submit (or resubmit) a plan for review

        From changes_requested only approved items keep their decision; all
        other items go back to pending with feedback cleared.

        Raises:
            InvalidState: If the plan is approved, sent to members or locked
            ValidationError: If no named item remains
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.SUBMIT_BUDGET)
        ensure_allowed(plan.status, PlanOperation.SUBMIT)

        normalize_for_submit(plan)
        now = self.time_provider.now()
        plan.submitted_at = now
        plan.version += 1
        self._move(
            plan, PlanOperation.SUBMIT, actor, AuditAction.SUBMITTED, "Budget submitted for review"
        )
        self.store.save(plan)

        self.notifier.emit(NotificationKind.SUBMITTED, plan.event_id, plan.department_id, plan.id)
        return plan

    def recall(self, plan_id: Any, actor: Actor) -> BudgetPlan:
        """
        Pull a submitted plan back to draft

        Raises:
            InvalidState: If the plan is not submitted
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.RECALL_BUDGET)
        self._move(
            plan, PlanOperation.RECALL, actor, AuditAction.RECALLED, "Budget recalled by department"
        )
        return self.store.save(plan)

    # =========================================================================
    # Review
    # =========================================================================

    def _review(
        self,
        plan_id: Any,
        decisions: Any,
        actor: Actor,
        operation: PlanOperation,
        permission: Operation,
        final: bool,
    ) -> BudgetPlan:
        plan = self.load(plan_id)
        require(actor, plan.department_id, permission)
        parsed = parse_decisions(decisions)
        ensure_allowed(plan.status, operation)

        merge_decisions(plan, parsed, keep_omitted=not final)
        outcome = derive_plan_status(plan.items.values())

        now = self.time_provider.now()
        plan.reviewed_by = actor.user_id
        plan.reviewed_at = now
        if outcome == PlanStatus.APPROVED and plan.approved_at is None:
            plan.approved_at = now

        action = REVIEW_ACTIONS[outcome] if final else AuditAction.REVIEW_SAVED
        self._move(plan, operation, actor, action, outcome=outcome)
        return self.store.save(plan)

    def save_review_draft(self, plan_id: Any, decisions: Any, actor: Actor) -> BudgetPlan:
        """
        Store reviewer decisions without finishing the review

        Decisions omitting status or feedback leave the item's prior value.
        The aggregate rule still sets the plan status. No notification.
        """
        return self._review(
            plan_id,
            decisions,
            actor,
            PlanOperation.SAVE_REVIEW_DRAFT,
            Operation.SAVE_REVIEW_DRAFT,
            final=False,
        )

    def complete_review(self, plan_id: Any, decisions: Any, actor: Actor) -> BudgetPlan:
        """
        Finish a review

        Status follows the aggregate rule: any rejection → changes_requested,
        all approved → approved, otherwise submitted. Approval and rejection
        are announced to the department.

        Raises:
            ValidationError: If decisions is not a list
            BudgetItemNotFound: If a decision names an unknown item
            InvalidState: If the plan is not under review
        """
        plan = self._review(
            plan_id,
            decisions,
            actor,
            PlanOperation.COMPLETE_REVIEW,
            Operation.COMPLETE_REVIEW,
            final=True,
        )
        if plan.status == PlanStatus.APPROVED:
            self.notifier.emit(
                NotificationKind.APPROVED, plan.event_id, plan.department_id, plan.id
            )
        elif plan.status == PlanStatus.CHANGES_REQUESTED:
            self.notifier.emit(
                NotificationKind.REJECTED, plan.event_id, plan.department_id, plan.id
            )
        return plan

    def update_visibility(self, plan_id: Any, is_public: Any, actor: Actor) -> BudgetPlan:
        """
        Make a plan visible (or not) to members outside its department

        Raises:
            ValidationError: If is_public is not a boolean
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.UPDATE_VISIBILITY)
        plan.is_public = validate_visibility_flag(is_public)
        now = self.time_provider.now()
        plan.updated_at = now
        append_entry(
            plan,
            now,
            actor.user_id,
            AuditAction.PUBLIC if plan.is_public else AuditAction.PRIVATE,
        )
        return self.store.save(plan)

    # =========================================================================
    # Hand-off to members
    # =========================================================================

    def send_to_members(self, plan_id: Any, actor: Actor) -> BudgetPlan:
        """
        Hand an approved, fully assigned plan to its members

        Raises:
            InvalidState: If the plan is not approved
            ValidationError: If any item is still unassigned
        """
        plan = self.load(plan_id)
        require(actor, plan.department_id, Operation.SEND_TO_MEMBERS)
        ensure_allowed(plan.status, PlanOperation.SEND_TO_MEMBERS)

        unassigned = plan.unassigned_items()
        if unassigned:
            raise ValidationError(f"{len(unassigned)} item(s) are not assigned yet", field="items")

        now = self.time_provider.now()
        plan.sent_to_members_at = now
        plan.sent_to_members_by = actor.user_id
        self._move(
            plan,
            PlanOperation.SEND_TO_MEMBERS,
            actor,
            AuditAction.SENT_TO_MEMBERS,
            "Budget sent to members",
        )
        self.store.save(plan)

        self.notifier.emit(
            NotificationKind.SENT_TO_MEMBERS, plan.event_id, plan.department_id, plan.id
        )
        return plan
