"""
BudgetStore - persistence boundary for budget plan documents

Plans are stored whole as JSON; event, department and status are copied
into indexed columns for listings. Writes are revision-checked (see
SQLiteDocumentStore).
"""

import json
import sqlite3
from collections.abc import Iterable

from budget_lifecycle.budget.models import BudgetPlan, PlanStatus
from budget_lifecycle.kernel.errors import ConflictRisk
from budget_lifecycle.kernel.document_store import SQLiteDocumentStore, persistence_guard
from budget_lifecycle.kernel.retry import retry_on_sqlite_lock


class BudgetStore(SQLiteDocumentStore):
    """
    SQLite-backed store for BudgetPlan documents

    Schema:
    - budget_plans: one row per plan, JSON body plus scoping columns
    - Indices: (event_id, department_id), (event_id, status)
    """

    table = "budget_plans"
    schema = (
        """
        CREATE TABLE IF NOT EXISTS budget_plans (
            id TEXT PRIMARY KEY,
            event_id TEXT NOT NULL,
            department_id TEXT NOT NULL,
            status TEXT NOT NULL,
            is_public INTEGER NOT NULL DEFAULT 0,
            revision INTEGER NOT NULL,
            doc_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_budget_plans_scope "
        "ON budget_plans(event_id, department_id)",
        "CREATE INDEX IF NOT EXISTS idx_budget_plans_status "
        "ON budget_plans(event_id, status)",
    )

    @staticmethod
    def _columns(plan: BudgetPlan) -> dict[str, object]:
        return {
            "event_id": plan.event_id,
            "department_id": plan.department_id,
            "status": plan.status.value,
            "is_public": int(plan.is_public),
            "doc_json": json.dumps(plan.model_dump(mode="json", exclude={"revision"})),
            "updated_at": plan.updated_at.isoformat(),
        }

    @staticmethod
    def _from_row(row: sqlite3.Row) -> BudgetPlan:
        plan = BudgetPlan.model_validate(json.loads(row["doc_json"]))
        plan.revision = row["revision"]
        return plan

    @persistence_guard("budget_plans.get")
    @retry_on_sqlite_lock()
    def get(self, plan_id: str) -> BudgetPlan | None:
        """
        Load a plan by id

        Returns:
            The plan with ``revision`` set, or None if absent
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT revision, doc_json FROM budget_plans WHERE id = ?", (plan_id,)
            ).fetchone()
            return self._from_row(row) if row else None

    @persistence_guard("budget_plans.insert")
    @retry_on_sqlite_lock()
    def insert(self, plan: BudgetPlan) -> BudgetPlan:
        """
        Store a new plan

        Raises:
            ConflictRisk: If a plan with the same id exists
        """
        with self._connect() as conn:
            columns = {
                "id": plan.id,
                **self._columns(plan),
                "created_at": plan.created_at.isoformat(),
            }
            plan.revision = self._insert(conn, plan.id, columns)
            conn.commit()
        return plan

    @persistence_guard("budget_plans.save")
    @retry_on_sqlite_lock()
    def save(self, plan: BudgetPlan) -> BudgetPlan:
        """
        Write back a plan loaded earlier

        The plan's ``revision`` must be the revision it was loaded at.

        Raises:
            ConflictRisk: If another writer saved the plan in between
        """
        with self._connect() as conn:
            plan.revision = self._update(
                conn, plan.id, {"id": plan.id}, self._columns(plan), plan.revision
            )
            conn.commit()
        return plan

    @persistence_guard("budget_plans.delete")
    @retry_on_sqlite_lock()
    def delete(self, plan: BudgetPlan) -> None:
        """
        Remove a plan

        Raises:
            ConflictRisk: If the plan changed since it was loaded
        """
        with self._connect() as conn:
            query = "DELETE FROM budget_plans WHERE id = ?"
            params: list[object] = [plan.id]
            if self.optimistic_locking:
                query += " AND revision = ?"
                params.append(plan.revision)
            cursor = conn.execute(query, params)
            if cursor.rowcount == 0:
                actual = self._current_revision(conn, {"id": plan.id})
                raise ConflictRisk(plan.id, plan.revision, -1 if actual is None else actual)
            conn.commit()

    @persistence_guard("budget_plans.list_for_department")
    @retry_on_sqlite_lock()
    def list_for_department(self, event_id: str, department_id: str) -> list[BudgetPlan]:
        """All plans of one department in one event, newest first"""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT revision, doc_json FROM budget_plans "
                "WHERE event_id = ? AND department_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (event_id, department_id),
            ).fetchall()
            return [self._from_row(row) for row in rows]

    @persistence_guard("budget_plans.list_for_event")
    @retry_on_sqlite_lock()
    def list_for_event(
        self,
        event_id: str,
        statuses: Iterable[PlanStatus] | None = None,
    ) -> list[BudgetPlan]:
        """
        Plans of an event, newest first

        Args:
            event_id: Event to list
            statuses: Restrict to these statuses (all when None)
        """
        query = "SELECT revision, doc_json FROM budget_plans WHERE event_id = ?"
        params: list[object] = [event_id]
        if statuses is not None:
            values = [status.value for status in statuses]
            if not values:
                return []
            query += f" AND status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        query += " ORDER BY created_at DESC, id DESC"

        with self._connect() as conn:
            return [self._from_row(row) for row in conn.execute(query, params).fetchall()]
