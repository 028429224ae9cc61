"""
Expense Module - actual spending reported against approved items
"""

from budget_lifecycle.expense.models import Comparison, ExpenseRecord, SubmissionStatus

__all__ = ["ExpenseRecord", "Comparison", "SubmissionStatus"]
