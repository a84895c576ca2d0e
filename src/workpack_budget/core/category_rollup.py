"""Per-category rollup of cost code budget summaries."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from workpack_budget.core.models import ZERO, CategoryRollup, CostCodeBudgetSummary


def list_categories(summaries: Iterable[CostCodeBudgetSummary]) -> list[str]:
    """Distinct categories in first-seen order."""
    return list(dict.fromkeys(summary.category for summary in summaries))


def rollup_by_category(summaries: Iterable[CostCodeBudgetSummary]) -> list[CategoryRollup]:
    """Sum budget and actual amounts per category.

    Each rollup's budget_amount equals the sum of its constituent cost codes'
    budget_amount. Categories keep the order in which they first appear.
    """
    totals: dict[str, tuple[Decimal, Decimal]] = {}
    counts: dict[str, int] = {}
    for summary in summaries:
        budget, actual = totals.get(summary.category, (ZERO, ZERO))
        totals[summary.category] = (budget + summary.budget_amount, actual + summary.actual_amount)
        counts[summary.category] = counts.get(summary.category, 0) + 1

    return [
        CategoryRollup(
            category=category,
            budget_amount=budget,
            actual_amount=actual,
            cost_code_count=counts[category],
        )
        for category, (budget, actual) in totals.items()
    ]
