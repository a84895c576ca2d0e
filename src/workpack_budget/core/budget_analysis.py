"""Project budget analysis: invoiced revenue vs. actual cost per cost code.

Profit and margin formulas:
    profit = invoiced - actual_cost
    margin = profit / invoiced * 100     (0 when nothing was invoiced)

Expenses and invoice items without a cost code are grouped under the
NO_COST_CODE_KEY sentinel and displayed as "No Code" / "Unassigned".
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Literal

from workpack_budget.core.models import (
    NO_COST_CODE_KEY,
    NO_COST_CODE_LABEL,
    UNASSIGNED_COST_CODE_NAME,
    ZERO,
    CostCode,
    CostCodeProfitRow,
    InvoiceLineItem,
    ProjectBudgetAnalysis,
    ProjectExpense,
    variance_percentage,
)

ProfitSortKey = Literal["profit", "margin", "invoiced", "cost"]

_SORT_ATTRIBUTES: dict[str, str] = {
    "profit": "profit",
    "margin": "margin",
    "invoiced": "invoiced",
    "cost": "actual_cost",
}


def _group_totals(entries: Iterable[tuple[str | None, Decimal | None]]) -> dict[str, tuple[Decimal, int]]:
    grouped: dict[str, tuple[Decimal, int]] = {}
    for cost_code_id, amount in entries:
        key = cost_code_id or NO_COST_CODE_KEY
        total, count = grouped.get(key, (ZERO, 0))
        grouped[key] = (total + (amount or ZERO), count + 1)
    return grouped


def analyze_project_budget(
    cost_codes: Iterable[CostCode],
    expenses: Iterable[ProjectExpense],
    invoice_items: Iterable[InvoiceLineItem],
) -> ProjectBudgetAnalysis:
    """Compute per-cost-code profit and margin for a project.

    Rows cover every cost code that has at least one expense or invoice item,
    expense cost codes first, in first-seen order.
    """
    cost_codes_by_id = {cost_code.id: cost_code for cost_code in cost_codes}
    expenses_by_code = _group_totals((e.cost_code_id, e.amount) for e in expenses)
    invoiced_by_code = _group_totals((i.cost_code_id, i.total_price) for i in invoice_items)

    rows: list[CostCodeProfitRow] = []
    for code_id in dict.fromkeys([*expenses_by_code, *invoiced_by_code]):
        cost_code = cost_codes_by_id.get(code_id)
        actual_cost, expense_count = expenses_by_code.get(code_id, (ZERO, 0))
        invoiced, invoice_count = invoiced_by_code.get(code_id, (ZERO, 0))
        profit = invoiced - actual_cost

        if cost_code is not None:
            code, name = cost_code.code, cost_code.name
        elif code_id == NO_COST_CODE_KEY:
            code, name = NO_COST_CODE_LABEL, UNASSIGNED_COST_CODE_NAME
        else:
            code, name = code_id, "Unknown"

        rows.append(
            CostCodeProfitRow(
                cost_code_id=code_id,
                cost_code=code,
                cost_code_name=name,
                invoiced=invoiced,
                actual_cost=actual_cost,
                profit=profit,
                margin=variance_percentage(profit, invoiced),
                invoice_items=invoice_count,
                expense_items=expense_count,
            )
        )

    total_invoiced = sum((row.invoiced for row in rows), ZERO)
    total_actual = sum((row.actual_cost for row in rows), ZERO)
    total_profit = sum((row.profit for row in rows), ZERO)

    return ProjectBudgetAnalysis(
        rows=tuple(rows),
        total_invoiced=total_invoiced,
        total_actual_cost=total_actual,
        total_profit=total_profit,
        overall_margin=variance_percentage(total_profit, total_invoiced),
    )


def sort_profit_rows(
    rows: Iterable[CostCodeProfitRow],
    sort_by: ProfitSortKey = "profit",
    descending: bool = True,
) -> list[CostCodeProfitRow]:
    """Order analysis rows by profit, margin, invoiced or cost."""
    attribute = _SORT_ATTRIBUTES.get(sort_by)
    if attribute is None:
        raise ValueError(f"Unsupported sort key: {sort_by!r}")
    return sorted(rows, key=lambda row: getattr(row, attribute), reverse=descending)


def margin_band(margin: Decimal) -> str:
    """Classify a margin for display: healthy (>= 20), fair (>= 10), thin (>= 0) or loss."""
    if margin >= 20:
        return "healthy"
    if margin >= 10:
        return "fair"
    if margin >= 0:
        return "thin"
    return "loss"
