"""
Custom exceptions for the budget lifecycle engine

Every caller-facing failure belongs to one category: NotFound, InvalidState,
Forbidden, ValidationError or ConflictRisk. Each error carries a readable
message and the attributes needed to render it.
"""


class BudgetLifecycleError(Exception):
    """Base exception for all budget lifecycle errors"""

    category = "Error"


# =============================================================================
# NotFound
# =============================================================================


class NotFound(BudgetLifecycleError):
    """Raised when a referenced event, department, plan, item or expense is absent"""

    category = "NotFound"


class EventNotFound(NotFound):
    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class DepartmentNotFound(NotFound):
    def __init__(self, event_id: str, department_id: str) -> None:
        self.event_id = event_id
        self.department_id = department_id
        super().__init__(f"Department {department_id} not found in event {event_id}")


class BudgetNotFound(NotFound):
    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"Budget {plan_id} not found")


class BudgetItemNotFound(NotFound):
    def __init__(self, plan_id: str, item_id: str) -> None:
        self.plan_id = plan_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in budget {plan_id}")


class ExpenseNotFound(NotFound):
    def __init__(self, plan_id: str, item_id: str) -> None:
        self.plan_id = plan_id
        self.item_id = item_id
        super().__init__(
            f"No expense reported for item {item_id} of budget {plan_id}; "
            "report the expense first"
        )


# =============================================================================
# InvalidState
# =============================================================================


class InvalidState(BudgetLifecycleError):
    """
    Raised when an operation is attempted from a disallowed status

    The message always names the current status so callers can tell
    "awaiting approval" apart from "already decided".
    """

    category = "InvalidState"

    def __init__(self, current_status: str, message: str = "") -> None:
        self.current_status = current_status
        super().__init__(message or f"Operation not allowed in status {current_status}")


# =============================================================================
# Forbidden
# =============================================================================


class Forbidden(BudgetLifecycleError):
    """Raised on role or ownership mismatch"""

    category = "Forbidden"

    def __init__(self, reason: str, operation: str | None = None) -> None:
        self.reason = reason
        self.operation = operation
        super().__init__(reason)


# =============================================================================
# ValidationError
# =============================================================================


class ValidationError(BudgetLifecycleError):
    """
    Raised when a payload is malformed

    Examples: non-list items, a non-boolean visibility flag, an unparseable
    monetary value or an invalid identifier.
    """

    category = "ValidationError"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# ConflictRisk / persistence
# =============================================================================


class ConflictRisk(BudgetLifecycleError):
    """
    Raised when a document changed between load and save (optimistic locking)

    The caller should reload and retry.
    """

    category = "ConflictRisk"

    def __init__(self, document_id: str, expected_revision: int, actual_revision: int) -> None:
        self.document_id = document_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Document {document_id} was modified concurrently: "
            f"expected revision {expected_revision}, found {actual_revision}"
        )


class PersistenceError(BudgetLifecycleError):
    """
    Raised when the underlying store fails

    The message is deliberately generic; the original exception is chained
    as __cause__ and logged for operators.
    """

    category = "PersistenceError"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Storage failure during {operation}")
