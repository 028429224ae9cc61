"""
SQLite Document Store - JSON documents with revision-checked writes

Budget plans and expense records are stored as whole JSON documents, one row
each, next to a few indexed scoping columns (event, department, status) used
by listings. Every row carries a revision counter maintained by the store:

- insert writes revision 1
- update succeeds only if the stored revision still equals the revision the
  caller loaded (compare-and-swap), then bumps it
- a mismatch raises ConflictRisk so the caller can reload and retry

With optimistic locking disabled the revision is still bumped, but the
comparison is skipped and the last writer wins.
"""

import sqlite3
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

from budget_lifecycle.kernel.errors import ConflictRisk, PersistenceError
from budget_lifecycle.kernel.logging import get_logger
from budget_lifecycle.kernel.metrics import store_conflicts_total

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def persistence_guard(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Translate raw sqlite3 errors into a generic PersistenceError

    The full error is logged for operators; callers only see the operation name.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return func(*args, **kwargs)
            except sqlite3.Error as e:
                logger.error(
                    "Persistence failure",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                raise PersistenceError(operation) from e

        return wrapper

    return decorator


class SQLiteDocumentStore:
    """
    Base class for SQLite-backed document stores

    Subclasses provide ``table``, ``schema`` (CREATE statements) and build
    their own queries on top of ``_connect``, ``_insert`` and ``_update``.
    """

    table: str = ""
    schema: tuple[str, ...] = ()

    def __init__(self, db_path: str | Path, optimistic_locking: bool = True) -> None:
        """
        Args:
            db_path: Path to SQLite database file (may be shared between stores)
            optimistic_locking: Check revisions on update
        """
        self.db_path = Path(db_path)
        self.optimistic_locking = optimistic_locking
        self._initialize_schema()

    @persistence_guard("initialize_schema")
    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            for statement in self.schema:
                conn.execute(statement)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections"""
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def _where(key: Mapping[str, Any]) -> tuple[str, list[Any]]:
        clause = " AND ".join(f"{column} = ?" for column in key)
        return clause, list(key.values())

    def _current_revision(self, conn: sqlite3.Connection, key: Mapping[str, Any]) -> int | None:
        clause, params = self._where(key)
        row = conn.execute(
            f"SELECT revision FROM {self.table} WHERE {clause}", params
        ).fetchone()
        return row["revision"] if row else None

    def _insert(
        self,
        conn: sqlite3.Connection,
        document_id: str,
        columns: Mapping[str, Any],
    ) -> int:
        """
        Insert a new document row at revision 1

        Raises:
            ConflictRisk: If a row with the same key already exists
        """
        names = list(columns) + ["revision"]
        placeholders = ", ".join("?" for _ in names)
        try:
            conn.execute(
                f"INSERT INTO {self.table} ({', '.join(names)}) VALUES ({placeholders})",
                [*columns.values(), 1],
            )
        except sqlite3.IntegrityError as e:
            store_conflicts_total.labels(store=self.table).inc()
            raise ConflictRisk(document_id, 0, -1) from e
        return 1

    def _update(
        self,
        conn: sqlite3.Connection,
        document_id: str,
        key: Mapping[str, Any],
        columns: Mapping[str, Any],
        expected_revision: int,
    ) -> int:
        """
        Update an existing row, checking its revision when locking is on

        Returns:
            The new revision

        Raises:
            ConflictRisk: If the stored revision moved (or the row vanished)
        """
        assignments = ", ".join(f"{column} = ?" for column in columns)
        clause, key_params = self._where(key)
        params: list[Any] = [*columns.values(), *key_params]
        if self.optimistic_locking:
            clause += " AND revision = ?"
            params.append(expected_revision)

        cursor = conn.execute(
            f"UPDATE {self.table} SET {assignments}, revision = revision + 1 WHERE {clause}",
            params,
        )
        if cursor.rowcount == 0:
            actual = self._current_revision(conn, key)
            store_conflicts_total.labels(store=self.table).inc()
            logger.warning(
                "Revision conflict on write",
                store=self.table,
                document_id=document_id,
                expected_revision=expected_revision,
                actual_revision=actual,
            )
            raise ConflictRisk(document_id, expected_revision, -1 if actual is None else actual)

        if self.optimistic_locking:
            return expected_revision + 1
        return self._current_revision(conn, key) or expected_revision + 1

    def count(self) -> int:
        """Number of stored documents"""
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM {self.table}").fetchone()
            return int(row["n"])
