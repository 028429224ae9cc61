"""
Budget Module - plans, review workflow and item assignment

- models / commands: the plan aggregate and caller payloads
- invariants / transitions / permissions: pure rules
- workflow / assignment: the operations that mutate plans
- projections: read-side views, listings and statistics
"""

from budget_lifecycle.budget.models import (
    BudgetItem,
    BudgetPlan,
    Evidence,
    EvidenceType,
    ItemStatus,
    PlanStatus,
)

__all__ = [
    "BudgetPlan",
    "BudgetItem",
    "Evidence",
    "EvidenceType",
    "PlanStatus",
    "ItemStatus",
]
