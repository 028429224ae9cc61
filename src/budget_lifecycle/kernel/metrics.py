"""
Prometheus metrics for the budget lifecycle engine.

Counts operations by outcome, status transitions, notification deliveries
and optimistic-locking conflicts.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from budget_lifecycle.kernel.errors import BudgetLifecycleError

# ============================================================================
# Operation Metrics
# ============================================================================

operation_duration_seconds = Histogram(
    "budget_operation_duration_seconds",
    "Duration of budget engine operations in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

operations_total = Counter(
    "budget_operations_total",
    "Total number of budget engine operations",
    ["operation", "status"],  # status: success, rejected, failure
)

# ============================================================================
# Lifecycle Metrics
# ============================================================================

status_transitions_total = Counter(
    "budget_status_transitions_total",
    "Budget plan status transitions",
    ["from_status", "to_status"],
)

expense_submissions_total = Counter(
    "budget_expense_submissions_total",
    "Expense report submissions and withdrawals",
    ["action"],  # submitted, undone
)

plans_by_status = Gauge(
    "budget_plans_by_status",
    "Number of budget plans per status (refreshed by the health endpoint)",
    ["status"],
)

# ============================================================================
# Collaborator / Store Metrics
# ============================================================================

notifications_total = Counter(
    "budget_notifications_total",
    "Outward notifications by kind and delivery result",
    ["kind", "status"],  # status: sent, failed
)

store_conflicts_total = Counter(
    "budget_store_conflicts_total",
    "Optimistic locking conflicts detected on write",
    ["store"],
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator recording duration and outcome of an engine operation.

    Domain errors count as "rejected", anything else as "failure".

    Args:
        operation: Operation name used as the metric label
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except BudgetLifecycleError:
                status = "rejected"
                raise
            except Exception:
                status = "failure"
                raise
            finally:
                operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )
                operations_total.labels(operation=operation, status=status).inc()

        return wrapper

    return decorator


def record_transition(from_status: str, to_status: str) -> None:
    """Count a plan status change."""
    if from_status != to_status:
        status_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
