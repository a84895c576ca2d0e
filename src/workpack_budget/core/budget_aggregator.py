"""Budget aggregation engine: planned line items vs. actual expenses per cost code.

Turns two snapshots (work pack line items and recorded expenses) into one
summary row per cost code plus a global rollup.

Formulas:
    line total           = quantity * price
    budget_amount        = sum(line totals in bucket)
    actual_amount        = sum(expense amounts in bucket)
    variance             = total_actual - total_budget
    variance_percentage  = variance / total_budget * 100   (0 when total_budget == 0)

Items and expenses without a cost code share one sentinel bucket keyed
NO_COST_CODE_KEY. Buckets are ordered by cost code number; buckets without
a number follow the numbered ones and the sentinel bucket is always last.

The engine is a pure function of its inputs: nothing is mutated, nothing is
cached, and repeated calls with the same snapshots produce equal results.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal

import structlog

from workpack_budget.core.models import (
    NO_COST_CODE_KEY,
    UNASSIGNED_COST_CODE_NAME,
    ZERO,
    ActualExpense,
    BudgetedItem,
    BudgetLineItem,
    BudgetSummary,
    CostCodeBudgetSummary,
    RecordedExpense,
    WorkPackBudget,
    variance_percentage,
)
from workpack_budget.errors import MalformedBudgetInputError

logger = structlog.get_logger(__name__)

NegativeAmountPolicy = Literal["clamp", "allow", "reject"]

_POLICIES: frozenset[str] = frozenset({"clamp", "allow", "reject"})
DEFAULT_CATEGORY: str = "general"


@dataclass
class _BucketBuilder:
    """Mutable accumulator for one cost code, local to a single aggregation pass."""

    cost_code_id: str
    cost_code_name: str
    cost_code_number: str
    category: str
    budget_amount: Decimal = ZERO
    actual_amount: Decimal = ZERO
    items: list[BudgetedItem] = field(default_factory=list)
    expenses: list[RecordedExpense] = field(default_factory=list)

    def freeze(self) -> CostCodeBudgetSummary:
        return CostCodeBudgetSummary(
            cost_code_id=self.cost_code_id,
            cost_code_name=self.cost_code_name,
            cost_code_number=self.cost_code_number,
            category=self.category,
            budget_amount=self.budget_amount,
            actual_amount=self.actual_amount,
            item_count=len(self.items),
            items=tuple(self.items),
            expenses=tuple(self.expenses),
        )


def bucket_key(cost_code_id: str | None) -> str:
    """Map a possibly-missing cost code id to its bucket key."""
    return cost_code_id or NO_COST_CODE_KEY


def summary_sort_key(summary: CostCodeBudgetSummary) -> tuple[bool, bool, str, str]:
    """Ascending cost code number; unnumbered buckets next, the sentinel bucket last."""
    return (
        summary.is_unassigned,
        summary.cost_code_number == "",
        summary.cost_code_number,
        summary.cost_code_id,
    )


def _sanitize_amount(
    value: Decimal | None,
    *,
    field_name: str,
    entry_id: str,
    policy: NegativeAmountPolicy,
) -> tuple[Decimal, bool]:
    """Apply the malformed-input policy to one numeric field.

    Returns:
        The value to sum and whether it was adjusted.

    Raises:
        MalformedBudgetInputError: Under the ``reject`` policy for negative values.
    """
    if value is None:
        return ZERO, True

    if value >= ZERO or policy == "allow":
        return value, False

    if policy == "reject":
        raise MalformedBudgetInputError(
            f"Negative {field_name} on budget entry '{entry_id}'",
            details={"entry_id": entry_id, "field": field_name, "value": str(value)},
        )

    logger.warning(
        "budget_negative_value_clamped",
        entry_id=entry_id,
        field=field_name,
        value=str(value),
    )
    return ZERO, True


def aggregate(
    line_items: Iterable[BudgetLineItem],
    expenses: Iterable[ActualExpense],
    *,
    default_category: str = DEFAULT_CATEGORY,
    negative_amounts: NegativeAmountPolicy = "clamp",
) -> WorkPackBudget:
    """Group line items and expenses by cost code and compute variance.

    Args:
        line_items: Planned work pack items.
        expenses: Recorded expenses.
        default_category: Category for buckets whose cost code carries none.
        negative_amounts: ``clamp`` negative quantity/price/amount to zero and
            count it as adjusted, ``allow`` them through unchanged, or
            ``reject`` the whole pass.

    Returns:
        WorkPackBudget with ordered per-cost-code summaries and global totals.
        ``generated_at`` is left unset; the service layer stamps it.

    Raises:
        ValueError: If ``negative_amounts`` is not a known policy.
        MalformedBudgetInputError: Under the ``reject`` policy.
    """
    if negative_amounts not in _POLICIES:
        raise ValueError(f"Unknown negative amount policy: {negative_amounts!r}")

    buckets: dict[str, _BucketBuilder] = {}
    adjusted_entries = 0
    items_count = 0

    def _bucket_for(
        cost_code_id: str | None,
        cost_code_name: str,
        cost_code_number: str,
        cost_code_category: str | None,
    ) -> _BucketBuilder:
        key = bucket_key(cost_code_id)
        bucket = buckets.get(key)
        if bucket is not None:
            return bucket
        if key == NO_COST_CODE_KEY:
            bucket = _BucketBuilder(
                cost_code_id=NO_COST_CODE_KEY,
                cost_code_name=UNASSIGNED_COST_CODE_NAME,
                cost_code_number="",
                category=default_category,
            )
        else:
            bucket = _BucketBuilder(
                cost_code_id=key,
                cost_code_name=cost_code_name or "",
                cost_code_number=cost_code_number or "",
                category=cost_code_category or default_category,
            )
        buckets[key] = bucket
        return bucket

    for item in line_items:
        quantity, quantity_adjusted = _sanitize_amount(
            item.quantity, field_name="quantity", entry_id=item.id, policy=negative_amounts
        )
        price, price_adjusted = _sanitize_amount(
            item.price, field_name="price", entry_id=item.id, policy=negative_amounts
        )
        adjusted_entries += int(quantity_adjusted) + int(price_adjusted)
        items_count += 1

        total = quantity * price
        bucket = _bucket_for(
            item.cost_code_id,
            item.cost_code_name,
            item.cost_code_number,
            item.cost_code_category,
        )
        bucket.budget_amount += total
        bucket.items.append(
            BudgetedItem(
                id=item.id,
                product_name=item.line_item_name,
                quantity=quantity,
                price=price,
                total=total,
                unit=item.unit,
            )
        )

    for expense in expenses:
        amount, amount_adjusted = _sanitize_amount(
            expense.amount, field_name="amount", entry_id=expense.id, policy=negative_amounts
        )
        adjusted_entries += int(amount_adjusted)

        bucket = _bucket_for(
            expense.cost_code_id,
            expense.cost_code_name,
            expense.cost_code_number,
            expense.cost_code_category,
        )
        bucket.actual_amount += amount
        bucket.expenses.append(
            RecordedExpense(
                id=expense.id,
                description=expense.description,
                amount=amount,
                category=expense.category,
                vendor=expense.vendor,
            )
        )

    summaries = tuple(sorted((b.freeze() for b in buckets.values()), key=summary_sort_key))
    return WorkPackBudget(summaries=summaries, totals=summarize(summaries, items_count, adjusted_entries))


def summarize(
    summaries: Iterable[CostCodeBudgetSummary],
    items_count: int,
    adjusted_entries: int = 0,
) -> BudgetSummary:
    """Compute global totals from per-cost-code summaries."""
    rows = list(summaries)
    total_budget = sum((row.budget_amount for row in rows), ZERO)
    total_actual = sum((row.actual_amount for row in rows), ZERO)
    variance = total_actual - total_budget
    return BudgetSummary(
        total_budget=total_budget,
        total_actual=total_actual,
        variance=variance,
        variance_percentage=variance_percentage(variance, total_budget),
        items_count=items_count,
        cost_codes_count=len(rows),
        adjusted_entries=adjusted_entries,
    )
