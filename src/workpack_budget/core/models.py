"""Value objects for the work pack budget engine.

All models are frozen dataclasses. Inputs are snapshots fetched from the
backend; outputs are recomputed from scratch on every aggregation pass and
never persisted. Monetary fields are Decimal to avoid floating-point drift
when many line items are summed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

# Bucket key for line items and expenses without a cost code
NO_COST_CODE_KEY: str = "no-cost-code"
UNASSIGNED_COST_CODE_NAME: str = "Unassigned"
NO_COST_CODE_LABEL: str = "No Code"
DEFAULT_UNIT: str = "ea"

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrganizationContext:
    """Explicit organization identity passed into every service operation.

    Attributes:
        organization_id: Organization whose data is being read.
        user_id: Acting user, when known.
        access_token: Caller's bearer token forwarded to the backend, when known.
    """

    organization_id: str
    user_id: str | None = None
    access_token: str | None = field(default=None, repr=False)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CostCode:
    """A budget category such as "01 - Site Work"."""

    id: str
    code: str
    name: str
    category: str


@dataclass(frozen=True)
class BudgetLineItem:
    """A planned product or line item in a work pack.

    Attributes:
        id: Line item identifier.
        cost_code_id: Cost code reference, None when unassigned.
        cost_code_name: Display name of the referenced cost code.
        cost_code_number: Sortable code of the referenced cost code.
        line_item_name: Product or line item display name.
        quantity: Planned quantity, None when the backend sent no usable value.
        price: Unit price, None when the backend sent no usable value.
        unit: Unit label.
        cost_code_category: Category of the referenced cost code, when known.
    """

    id: str
    cost_code_id: str | None
    cost_code_name: str
    cost_code_number: str
    line_item_name: str
    quantity: Decimal | None
    price: Decimal | None
    unit: str = DEFAULT_UNIT
    cost_code_category: str | None = None

    @property
    def total(self) -> Decimal:
        """quantity x price, with missing values counted as zero."""
        return (self.quantity or ZERO) * (self.price or ZERO)


@dataclass(frozen=True)
class ActualExpense:
    """A real cost recorded against a work pack."""

    id: str
    cost_code_id: str | None
    cost_code_name: str
    cost_code_number: str
    description: str
    amount: Decimal | None
    category: str
    vendor: str | None = None
    cost_code_category: str | None = None


# ---------------------------------------------------------------------------
# Aggregation outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetedItem:
    """A line item as it contributed to a bucket, with the total actually summed."""

    id: str
    product_name: str
    quantity: Decimal
    price: Decimal
    total: Decimal
    unit: str


@dataclass(frozen=True)
class RecordedExpense:
    """An expense as it contributed to a bucket."""

    id: str
    description: str
    amount: Decimal
    category: str
    vendor: str | None


@dataclass(frozen=True)
class CostCodeBudgetSummary:
    """Per-cost-code budget row produced by the aggregator.

    Attributes:
        cost_code_id: Real cost code id or NO_COST_CODE_KEY.
        cost_code_name: Display name.
        cost_code_number: Display code, used for ordering.
        category: Grouping tag of the cost code.
        budget_amount: Sum of contributing line item totals.
        actual_amount: Sum of contributing expense amounts.
        item_count: Number of contributing line items.
        items: Contributing line items in input order.
        expenses: Contributing expenses in input order.
    """

    cost_code_id: str
    cost_code_name: str
    cost_code_number: str
    category: str
    budget_amount: Decimal
    actual_amount: Decimal
    item_count: int
    items: tuple[BudgetedItem, ...] = ()
    expenses: tuple[RecordedExpense, ...] = ()

    @property
    def is_unassigned(self) -> bool:
        return self.cost_code_id == NO_COST_CODE_KEY

    @property
    def variance(self) -> Decimal:
        """Actual minus budget; positive means overspending."""
        return self.actual_amount - self.budget_amount

    @property
    def variance_percentage(self) -> Decimal:
        return variance_percentage(self.variance, self.budget_amount)


@dataclass(frozen=True)
class BudgetSummary:
    """Global rollup across every cost code bucket.

    Attributes:
        total_budget: Sum of bucket budget amounts.
        total_actual: Sum of bucket actual amounts.
        variance: total_actual - total_budget.
        variance_percentage: variance / total_budget * 100, or 0 when total_budget is 0.
        items_count: Number of line items consumed.
        cost_codes_count: Number of buckets produced.
        adjusted_entries: Values defaulted to zero or clamped while aggregating.
    """

    total_budget: Decimal
    total_actual: Decimal
    variance: Decimal
    variance_percentage: Decimal
    items_count: int
    cost_codes_count: int
    adjusted_entries: int = 0


@dataclass(frozen=True)
class WorkPackBudget:
    """Result of one aggregation pass."""

    summaries: tuple[CostCodeBudgetSummary, ...]
    totals: BudgetSummary
    generated_at: datetime | None = None


@dataclass(frozen=True)
class CategoryRollup:
    """Budget totals for every cost code sharing a category."""

    category: str
    budget_amount: Decimal
    actual_amount: Decimal
    cost_code_count: int


# ---------------------------------------------------------------------------
# Project budget analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectExpense:
    """An expense recorded against a project."""

    cost_code_id: str | None
    amount: Decimal | None


@dataclass(frozen=True)
class InvoiceLineItem:
    """A billed line of a project invoice."""

    invoice_id: str
    cost_code_id: str | None
    total_price: Decimal | None


@dataclass(frozen=True)
class CostCodeProfitRow:
    """Invoiced vs. actual cost for one cost code of a project."""

    cost_code_id: str
    cost_code: str
    cost_code_name: str
    invoiced: Decimal
    actual_cost: Decimal
    profit: Decimal
    margin: Decimal
    invoice_items: int
    expense_items: int


@dataclass(frozen=True)
class ProjectBudgetAnalysis:
    """Per-cost-code profitability of a project plus overall totals."""

    rows: tuple[CostCodeProfitRow, ...]
    total_invoiced: Decimal
    total_actual_cost: Decimal
    total_profit: Decimal
    overall_margin: Decimal


def variance_percentage(variance: Decimal, base: Decimal) -> Decimal:
    """variance / base * 100, defined as 0 when base is not positive."""
    if base <= ZERO:
        return ZERO
    return variance / base * Decimal("100")
