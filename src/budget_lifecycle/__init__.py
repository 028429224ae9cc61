"""
Budget Lifecycle - department budget proposals and expense reconciliation

Departments draft budgets for an event, the organizing committee reviews
them item by item, approved items are handed to members, and members
reconcile what they actually spent against the estimate.
"""

from budget_lifecycle.directory import InMemoryDirectory
from budget_lifecycle.engine import BudgetEngine

__version__ = "0.1.0"
__all__ = ["BudgetEngine", "InMemoryDirectory", "__version__"]
