"""
BudgetEngine - main façade

The single entry point for the budget lifecycle: it resolves who the
requester is (via the event and membership directories), then hands the
call to the WorkflowEngine, AssignmentManager or ExpenseReconciler, and
assembles read views.

Example:
    >>> from budget_lifecycle import BudgetEngine, InMemoryDirectory
    >>> engine = BudgetEngine("budgets.db", directory)
    >>> plan = engine.create_budget("evt-1", "dep-1", {"name": "Stage", "items": [...]}, "hod-user")
    >>> engine.submit_budget(plan.id, "hod-user")
    >>> engine.complete_review(plan.id, [{"itemId": ..., "status": "approved"}], "hooc-user")
"""

from pathlib import Path
from typing import Any

from budget_lifecycle.budget.assignment import AssignmentManager
from budget_lifecycle.budget.models import BudgetPlan, PlanStatus
from budget_lifecycle.budget.permissions import Actor, Decision, Operation, require
from budget_lifecycle.budget.projections import (
    COMPLETED_FILTER,
    BudgetStatistics,
    BudgetView,
    Page,
    assignee_ids,
    build_budget_view,
    compute_statistics,
    is_completed,
    normalize_paging,
    paginate,
    summarize_plan,
)
from budget_lifecycle.budget.store import BudgetStore
from budget_lifecycle.budget.workflow import WorkflowEngine
from budget_lifecycle.directory import Department, EventDirectory, MembershipDirectory, Role
from budget_lifecycle.expense.models import ExpenseRecord, SubmissionResult
from budget_lifecycle.expense.reconciler import ExpenseReconciler
from budget_lifecycle.expense.store import ExpenseStore
from budget_lifecycle.kernel.errors import (
    DepartmentNotFound,
    EventNotFound,
    Forbidden,
    ValidationError,
)
from budget_lifecycle.kernel.ids import normalize_id
from budget_lifecycle.kernel.logging import LogOperation, get_logger
from budget_lifecycle.kernel.metrics import track_operation
from budget_lifecycle.kernel.settings import EngineSettings
from budget_lifecycle.kernel.time import RealTimeProvider, TimeProvider
from budget_lifecycle.notify import NotificationSink, NotifierBridge

logger = get_logger(__name__)


class BudgetEngine:
    """
    Budget lifecycle façade

    Provides the full operation catalogue:
    - authoring: create, update, categories, delete
    - review: submit, recall, save review draft, complete review, visibility
    - hand-off: assign items, send to members
    - reconciliation: report, toggle paid, submit / undo submit expenses
    - reads: budget view, department and event listings, statistics

    Every method takes the requester's user id last; roles are resolved per
    call from the directories.
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        events: EventDirectory,
        memberships: MembershipDirectory | None = None,
        notification_sink: NotificationSink | None = None,
        settings: EngineSettings | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """
        Initialize the engine

        Args:
            sqlite_path: Path to SQLite database
            events: Event/department directory
            memberships: Membership directory (defaults to ``events`` when it
                implements both, as InMemoryDirectory does)
            notification_sink: Delivery target for notifications (dropped if None)
            settings: Engine settings (defaults if None)
            time_provider: Time provider (uses real time if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.settings = settings or EngineSettings()
        self.time_provider = time_provider or RealTimeProvider()
        self.events = events
        self.memberships = memberships if memberships is not None else events  # type: ignore[assignment]

        self.budget_store = BudgetStore(self.sqlite_path, self.settings.optimistic_locking)
        self.expense_store = ExpenseStore(self.sqlite_path, self.settings.optimistic_locking)
        self.notifier = NotifierBridge(notification_sink)

        self.workflow = WorkflowEngine(
            self.budget_store, self.time_provider, self.settings, self.notifier
        )
        self.assignments = AssignmentManager(self.workflow, self.memberships, self.notifier)
        self.reconciler = ExpenseReconciler(self.workflow, self.expense_store, self.notifier)

    # =========================================================================
    # Requester resolution
    # =========================================================================

    def _require_event(self, event_id: Any) -> str:
        event_id = normalize_id(event_id, "eventId")
        if not self.events.exists(event_id):
            raise EventNotFound(event_id)
        return event_id

    def _require_department(self, event_id: str, department_id: Any) -> Department:
        department_id = normalize_id(department_id, "departmentId")
        department = self.events.department_in_event(event_id, department_id)
        if department is None:
            raise DepartmentNotFound(event_id, department_id)
        return department

    def resolve_actor(
        self,
        event_id: str,
        requester: Any,
        department: Department | None = None,
    ) -> Actor:
        """
        Work out the requester's role for an event (and department)

        Only a department's designated lead is its HoD. The lead holds the
        role regardless of their membership record, and an HoD membership
        of anyone else counts as a plain member.
        """
        user_id = normalize_id(requester, "requester")
        membership = self.memberships.membership_of(event_id, user_id)
        member_id = membership.member_id if membership else None

        if department is not None and department.leader_id == user_id:
            return Actor(user_id, Role.HOD, department.department_id, member_id)
        if membership is None:
            return Actor(user_id, None)

        role = membership.role
        if role == Role.HOD and not self._leads(event_id, membership.department_id, user_id):
            role = Role.MEMBER
        return Actor(user_id, role, membership.department_id, member_id)

    def _leads(self, event_id: str, department_id: str | None, user_id: str) -> bool:
        if department_id is None:
            return False
        department = self.events.department_in_event(event_id, department_id)
        return department is not None and department.leader_id == user_id

    def _actor_for_plan(self, plan_id: Any, requester: Any) -> tuple[BudgetPlan, Actor]:
        plan = self.workflow.load(plan_id)
        department = self.events.department_in_event(plan.event_id, plan.department_id)
        return plan, self.resolve_actor(plan.event_id, requester, department)

    # =========================================================================
    # Authoring
    # =========================================================================

    @track_operation("createBudget")
    def create_budget(
        self,
        event_id: Any,
        department_id: Any,
        payload: dict[str, Any],
        requester: Any,
    ) -> BudgetPlan:
        """
        Create a draft plan for a department

        Raises:
            EventNotFound / DepartmentNotFound: If the scope does not exist
            Forbidden: If the requester does not lead the department
            ValidationError: If the payload is malformed
        """
        with LogOperation(logger, "create_budget", event_id=event_id, department_id=department_id):
            event_id = self._require_event(event_id)
            department = self._require_department(event_id, department_id)
            actor = self.resolve_actor(event_id, requester, department)
            return self.workflow.create(event_id, department.department_id, payload, actor)

    @track_operation("updateBudget")
    def update_budget(self, plan_id: Any, payload: dict[str, Any], requester: Any) -> BudgetPlan:
        with LogOperation(logger, "update_budget", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.update(plan_id, payload, actor)

    @track_operation("updateCategories")
    def update_categories(self, plan_id: Any, categories: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "update_categories", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.update_categories(plan_id, categories, actor)

    @track_operation("deleteBudget")
    def delete_budget(self, plan_id: Any, requester: Any) -> None:
        with LogOperation(logger, "delete_budget", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            self.workflow.delete(plan_id, actor)

    # =========================================================================
    # Submission and review
    # =========================================================================

    @track_operation("submitBudget")
    def submit_budget(self, plan_id: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "submit_budget", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.submit(plan_id, actor)

    @track_operation("recallBudget")
    def recall_budget(self, plan_id: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "recall_budget", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.recall(plan_id, actor)

    @track_operation("saveReviewDraft")
    def save_review_draft(self, plan_id: Any, decisions: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "save_review_draft", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.save_review_draft(plan_id, decisions, actor)

    @track_operation("completeReview")
    def complete_review(self, plan_id: Any, decisions: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "complete_review", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.complete_review(plan_id, decisions, actor)

    @track_operation("updateVisibility")
    def update_visibility(self, plan_id: Any, is_public: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "update_visibility", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.update_visibility(plan_id, is_public, actor)

    # =========================================================================
    # Hand-off
    # =========================================================================

    @track_operation("assignItem")
    def assign_item(
        self, plan_id: Any, item_id: Any, assignee: Any, requester: Any
    ) -> BudgetPlan:
        with LogOperation(logger, "assign_item", plan_id=plan_id, item_id=item_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.assignments.assign_item(plan_id, item_id, assignee, actor)

    @track_operation("sendToMembers")
    def send_to_members(self, plan_id: Any, requester: Any) -> BudgetPlan:
        with LogOperation(logger, "send_to_members", plan_id=plan_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.workflow.send_to_members(plan_id, actor)

    # =========================================================================
    # Reconciliation
    # =========================================================================

    @track_operation("reportExpense")
    def report_expense(
        self, plan_id: Any, item_id: Any, payload: dict[str, Any], requester: Any
    ) -> ExpenseRecord:
        with LogOperation(logger, "report_expense", plan_id=plan_id, item_id=item_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.reconciler.report_expense(plan_id, item_id, payload, actor)

    @track_operation("togglePaid")
    def toggle_paid(self, plan_id: Any, item_id: Any, requester: Any) -> ExpenseRecord:
        with LogOperation(logger, "toggle_paid", plan_id=plan_id, item_id=item_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.reconciler.toggle_paid(plan_id, item_id, actor)

    @track_operation("submitExpense")
    def submit_expense(self, plan_id: Any, item_id: Any, requester: Any) -> SubmissionResult:
        with LogOperation(logger, "submit_expense", plan_id=plan_id, item_id=item_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.reconciler.submit_expense(plan_id, item_id, actor)

    @track_operation("undoSubmitExpense")
    def undo_submit_expense(self, plan_id: Any, item_id: Any, requester: Any) -> ExpenseRecord:
        with LogOperation(logger, "undo_submit_expense", plan_id=plan_id, item_id=item_id):
            _, actor = self._actor_for_plan(plan_id, requester)
            return self.reconciler.undo_submit_expense(plan_id, item_id, actor)

    # =========================================================================
    # Reads
    # =========================================================================

    @track_operation("getBudget")
    def get_budget(self, plan_id: Any, requester: Any) -> BudgetView:
        """
        Display form of a plan, items merged with their expense records

        Outsiders of the department only see public plans that have left
        draft, the same rule the listings apply.

        Raises:
            Forbidden: "Budget is private" for outsiders of a private or draft plan
        """
        with LogOperation(logger, "get_budget", plan_id=plan_id):
            plan, actor = self._actor_for_plan(plan_id, requester)
            decision = require(actor, plan.department_id, Operation.GET_BUDGET)
            if decision == Decision.PUBLIC_ONLY and (
                not plan.is_public or plan.status == PlanStatus.DRAFT
            ):
                raise Forbidden("Budget is private", operation=Operation.GET_BUDGET.value)

            records = self.expense_store.list_for_plan(plan.id)
            members = self.memberships.lookup_members(assignee_ids(plan))
            return build_budget_view(plan, records, members)

    @track_operation("listBudgetsForDepartment")
    def list_budgets_for_department(
        self,
        event_id: Any,
        department_id: Any,
        requester: Any,
        page: Any = None,
        limit: Any = None,
    ) -> Page:
        """
        Plans of one department, newest first

        The department's own members see every plan, the reviewer sees
        everything but drafts, anyone else only public non-draft plans.
        """
        with LogOperation(
            logger, "list_budgets_for_department", event_id=event_id, department_id=department_id
        ):
            event_id = self._require_event(event_id)
            department = self._require_department(event_id, department_id)
            actor = self.resolve_actor(event_id, requester, department)
            decision = require(actor, department.department_id, Operation.LIST_FOR_DEPARTMENT)
            page_number, page_size = normalize_paging(page, limit, self.settings)

            plans = self.budget_store.list_for_department(event_id, department.department_id)
            own_department = actor.role != Role.HOOC and decision == Decision.ALLOW
            if not own_department:
                plans = [plan for plan in plans if plan.status != PlanStatus.DRAFT]
            if decision == Decision.PUBLIC_ONLY:
                plans = [plan for plan in plans if plan.is_public]

            records = self.expense_store.list_for_plans(plan.id for plan in plans)
            summaries = [summarize_plan(plan, records[plan.id]) for plan in plans]
            return paginate(summaries, page_number, page_size)

    @track_operation("listBudgetsForEvent")
    def list_budgets_for_event(
        self,
        event_id: Any,
        requester: Any,
        status: str | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page:
        """
        Plans of an event, newest first

        Args:
            status: A plan status, or "completed" for plans sent to members
                whose every expense report is submitted. Drafts are left out
                unless asked for explicitly.

        Raises:
            ValidationError: If status is not a known filter
        """
        with LogOperation(logger, "list_budgets_for_event", event_id=event_id, status=status):
            event_id = self._require_event(event_id)
            actor = self.resolve_actor(event_id, requester)
            decision = require(actor, None, Operation.LIST_FOR_EVENT)
            page_number, page_size = normalize_paging(page, limit, self.settings)

            completed_only = status == COMPLETED_FILTER
            if status is None:
                statuses = [s for s in PlanStatus if s != PlanStatus.DRAFT]
            elif completed_only:
                statuses = [PlanStatus.SENT_TO_MEMBERS]
            else:
                try:
                    statuses = [PlanStatus(status)]
                except ValueError as e:
                    raise ValidationError(
                        f"Unknown status filter: {status}", field="status"
                    ) from e

            plans = self.budget_store.list_for_event(event_id, statuses)
            if decision == Decision.PUBLIC_ONLY:
                plans = [
                    plan
                    for plan in plans
                    if (plan.department_id == actor.department_id)
                    or (plan.is_public and plan.status != PlanStatus.DRAFT)
                ]

            records = self.expense_store.list_for_plans(plan.id for plan in plans)
            if completed_only:
                plans = [plan for plan in plans if is_completed(plan, records[plan.id])]
            summaries = [summarize_plan(plan, records[plan.id]) for plan in plans]
            return paginate(summaries, page_number, page_size)

    @track_operation("getStatistics")
    def get_statistics(
        self,
        event_id: Any,
        requester: Any,
        department_id: Any = None,
    ) -> BudgetStatistics:
        """
        Estimated vs actual spending for an event

        The reviewer may look at the whole event or any one department;
        everybody else is limited to their own department.

        Raises:
            Forbidden: If the requester has no department in the event, or
                asks for another department
        """
        with LogOperation(logger, "get_statistics", event_id=event_id, department_id=department_id):
            event_id = self._require_event(event_id)
            department = (
                self._require_department(event_id, department_id)
                if department_id is not None
                else None
            )
            actor = self.resolve_actor(event_id, requester, department)

            if actor.role == Role.HOOC:
                scope = department.department_id if department else None
            else:
                scope = department.department_id if department else actor.department_id
                if scope is None:
                    raise Forbidden("Requester has no department in this event")
            require(actor, scope, Operation.GET_STATISTICS)

            plans = self.budget_store.list_for_event(event_id)
            if scope is not None:
                plans = [plan for plan in plans if plan.department_id == scope]
            records = self.expense_store.list_for_plans(plan.id for plan in plans)
            return compute_statistics(event_id, plans, records, scope)
