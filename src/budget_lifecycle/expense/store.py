"""
ExpenseStore - persistence boundary for expense records

At most one record exists per (plan_id, item_id); the pair is the primary
key. Records have no delete path.
"""

import json
import sqlite3
from collections.abc import Iterable

from budget_lifecycle.expense.models import ExpenseRecord
from budget_lifecycle.kernel.document_store import SQLiteDocumentStore, persistence_guard
from budget_lifecycle.kernel.retry import retry_on_sqlite_lock


class ExpenseStore(SQLiteDocumentStore):
    """
    SQLite-backed store for ExpenseRecord documents

    Schema:
    - expense_records: primary key (plan_id, item_id), JSON body
    - Index: (event_id, department_id)
    """

    table = "expense_records"
    schema = (
        """
        CREATE TABLE IF NOT EXISTS expense_records (
            plan_id TEXT NOT NULL,
            item_id TEXT NOT NULL,
            event_id TEXT NOT NULL,
            department_id TEXT NOT NULL,
            submitted_status TEXT NOT NULL,
            revision INTEGER NOT NULL,
            doc_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (plan_id, item_id)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_expense_records_scope "
        "ON expense_records(event_id, department_id)",
    )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ExpenseRecord:
        record = ExpenseRecord.model_validate(json.loads(row["doc_json"]))
        record.revision = row["revision"]
        return record

    @persistence_guard("expense_records.get")
    @retry_on_sqlite_lock()
    def get(self, plan_id: str, item_id: str) -> ExpenseRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT revision, doc_json FROM expense_records "
                "WHERE plan_id = ? AND item_id = ?",
                (plan_id, item_id),
            ).fetchone()
            return self._from_row(row) if row else None

    @persistence_guard("expense_records.save")
    @retry_on_sqlite_lock()
    def save(self, record: ExpenseRecord) -> ExpenseRecord:
        """
        Insert a new record (revision 0) or update an existing one

        ``comparison`` is recomputed before writing.

        Raises:
            ConflictRisk: If the record changed since it was loaded, or a
                record for the same item was created concurrently
        """
        record.refresh_comparison()
        columns = {
            "event_id": record.event_id,
            "department_id": record.department_id,
            "submitted_status": record.submitted_status.value,
            "doc_json": json.dumps(record.model_dump(mode="json", exclude={"revision"})),
            "updated_at": record.updated_at.isoformat(),
        }
        document_id = f"{record.plan_id}/{record.item_id}"
        with self._connect() as conn:
            if record.revision == 0:
                record.revision = self._insert(
                    conn,
                    document_id,
                    {
                        "plan_id": record.plan_id,
                        "item_id": record.item_id,
                        **columns,
                        "created_at": record.created_at.isoformat(),
                    },
                )
            else:
                record.revision = self._update(
                    conn,
                    document_id,
                    {"plan_id": record.plan_id, "item_id": record.item_id},
                    columns,
                    record.revision,
                )
            conn.commit()
        return record

    @persistence_guard("expense_records.list_for_plan")
    @retry_on_sqlite_lock()
    def list_for_plan(self, plan_id: str) -> dict[str, ExpenseRecord]:
        """Records of one plan keyed by item_id"""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT revision, doc_json FROM expense_records WHERE plan_id = ?",
                (plan_id,),
            ).fetchall()
            records = [self._from_row(row) for row in rows]
            return {record.item_id: record for record in records}

    @persistence_guard("expense_records.list_for_plans")
    @retry_on_sqlite_lock()
    def list_for_plans(self, plan_ids: Iterable[str]) -> dict[str, dict[str, ExpenseRecord]]:
        """Batch variant of list_for_plan: plan_id -> item_id -> record"""
        ids = list(dict.fromkeys(plan_ids))
        result: dict[str, dict[str, ExpenseRecord]] = {plan_id: {} for plan_id in ids}
        if not ids:
            return result
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT revision, doc_json FROM expense_records "
                f"WHERE plan_id IN ({', '.join('?' for _ in ids)})",
                ids,
            ).fetchall()
        for row in rows:
            record = self._from_row(row)
            result[record.plan_id][record.item_id] = record
        return result
