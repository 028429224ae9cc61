"""
Kernel - shared infrastructure for the budget engine

Errors, identifiers, time, money parsing, settings, logging, metrics, retry
and the SQLite document store that both budget and expense stores build on.
"""

from budget_lifecycle.kernel.errors import (
    BudgetItemNotFound,
    BudgetLifecycleError,
    BudgetNotFound,
    ConflictRisk,
    DepartmentNotFound,
    EventNotFound,
    ExpenseNotFound,
    Forbidden,
    InvalidState,
    NotFound,
    PersistenceError,
    ValidationError,
)
from budget_lifecycle.kernel.ids import generate_id, normalize_id
from budget_lifecycle.kernel.settings import EngineSettings
from budget_lifecycle.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    "normalize_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Settings
    "EngineSettings",
    # Errors
    "BudgetLifecycleError",
    "NotFound",
    "EventNotFound",
    "DepartmentNotFound",
    "BudgetNotFound",
    "BudgetItemNotFound",
    "ExpenseNotFound",
    "InvalidState",
    "Forbidden",
    "ValidationError",
    "ConflictRisk",
    "PersistenceError",
]
