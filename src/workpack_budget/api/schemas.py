"""Pydantic response schemas for the work pack budget API.

Amounts are Decimal internally and serialised as JSON numbers. Formatted
display strings are included next to the raw values.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer

from workpack_budget.core.budget_analysis import margin_band
from workpack_budget.core.formatting import (
    format_currency,
    format_percentage,
    format_signed_currency,
    variance_direction,
)
from workpack_budget.core.models import (
    NO_COST_CODE_LABEL,
    BudgetSummary,
    CategoryRollup,
    CostCodeBudgetSummary,
    CostCodeProfitRow,
    ProjectBudgetAnalysis,
)

Amount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ---------------------------------------------------------------------------
# Work pack budget
# ---------------------------------------------------------------------------


class BudgetedItemResponse(BaseModel):
    id: str
    product_name: str
    quantity: Amount
    price: Amount
    total: Amount
    unit: str

    model_config = {"from_attributes": True}


class RecordedExpenseResponse(BaseModel):
    id: str
    description: str
    amount: Amount
    category: str
    vendor: str | None

    model_config = {"from_attributes": True}


class CostCodeSummaryResponse(BaseModel):
    """Budget against actual for one cost code bucket."""

    cost_code_id: str
    cost_code_name: str
    cost_code_number: str
    display_number: str
    category: str
    budget_amount: Amount
    actual_amount: Amount
    variance: Amount
    variance_percentage: Amount
    variance_direction: str
    item_count: int
    items: list[BudgetedItemResponse]
    expenses: list[RecordedExpenseResponse]

    @classmethod
    def from_summary(cls, summary: CostCodeBudgetSummary) -> "CostCodeSummaryResponse":
        return cls(
            cost_code_id=summary.cost_code_id,
            cost_code_name=summary.cost_code_name,
            cost_code_number=summary.cost_code_number,
            display_number=summary.cost_code_number or NO_COST_CODE_LABEL,
            category=summary.category,
            budget_amount=summary.budget_amount,
            actual_amount=summary.actual_amount,
            variance=summary.variance,
            variance_percentage=summary.variance_percentage,
            variance_direction=variance_direction(summary.variance),
            item_count=summary.item_count,
            items=[BudgetedItemResponse.model_validate(item) for item in summary.items],
            expenses=[RecordedExpenseResponse.model_validate(expense) for expense in summary.expenses],
        )


class BudgetTotalsResponse(BaseModel):
    """Work pack totals, always computed over every cost code."""

    total_budget: Amount
    total_actual: Amount
    variance: Amount
    variance_percentage: Amount
    items_count: int
    cost_codes_count: int
    adjusted_entries: int
    display: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_totals(cls, totals: BudgetSummary) -> "BudgetTotalsResponse":
        return cls(
            total_budget=totals.total_budget,
            total_actual=totals.total_actual,
            variance=totals.variance,
            variance_percentage=totals.variance_percentage,
            items_count=totals.items_count,
            cost_codes_count=totals.cost_codes_count,
            adjusted_entries=totals.adjusted_entries,
            display={
                "total_budget": format_currency(totals.total_budget),
                "total_actual": format_currency(totals.total_actual),
                "variance": format_signed_currency(totals.variance),
                "variance_percentage": format_percentage(totals.variance_percentage),
            },
        )


class CategoryRollupResponse(BaseModel):
    category: str
    budget_amount: Amount
    actual_amount: Amount
    cost_code_count: int

    model_config = {"from_attributes": True}


class WorkPackBudgetResponse(BaseModel):
    """Auto-generated budget of a work pack.

    ``summaries`` honours the search and category filters; ``totals`` and
    ``categories`` always describe the whole work pack.
    """

    work_pack_id: str
    summaries: list[CostCodeSummaryResponse]
    totals: BudgetTotalsResponse
    categories: list[str]
    category_rollups: list[CategoryRollupResponse]
    generated_at: datetime | None


class CategoryRollupListResponse(BaseModel):
    work_pack_id: str
    rollups: list[CategoryRollupResponse]

    @classmethod
    def from_rollups(cls, work_pack_id: str, rollups: list[CategoryRollup]) -> "CategoryRollupListResponse":
        return cls(
            work_pack_id=work_pack_id,
            rollups=[CategoryRollupResponse.model_validate(rollup) for rollup in rollups],
        )


class BudgetSearchHitResponse(BaseModel):
    score: float
    matched_fields: list[str]
    summary: CostCodeSummaryResponse


class BudgetSearchResponse(BaseModel):
    work_pack_id: str
    query: str
    results: list[BudgetSearchHitResponse]


class BudgetViewStateResponse(BaseModel):
    """Refresh state of a work pack budget view."""

    work_pack_id: str
    status: str
    latest_request: int
    error: str | None
    last_generated: datetime | None
    totals: BudgetTotalsResponse | None


# ---------------------------------------------------------------------------
# Project budget analysis
# ---------------------------------------------------------------------------


class CostCodeProfitResponse(BaseModel):
    """Invoiced revenue against actual cost for one cost code."""

    cost_code_id: str
    cost_code: str
    cost_code_name: str
    invoiced: Amount
    actual_cost: Amount
    profit: Amount
    margin: Amount
    margin_band: str
    invoice_items: int
    expense_items: int

    @classmethod
    def from_row(cls, row: CostCodeProfitRow) -> "CostCodeProfitResponse":
        return cls(
            cost_code_id=row.cost_code_id,
            cost_code=row.cost_code,
            cost_code_name=row.cost_code_name,
            invoiced=row.invoiced,
            actual_cost=row.actual_cost,
            profit=row.profit,
            margin=row.margin,
            margin_band=margin_band(row.margin),
            invoice_items=row.invoice_items,
            expense_items=row.expense_items,
        )


class ProjectBudgetAnalysisResponse(BaseModel):
    project_id: str
    rows: list[CostCodeProfitResponse]
    total_invoiced: Amount
    total_actual_cost: Amount
    total_profit: Amount
    overall_margin: Amount

    @classmethod
    def from_analysis(
        cls,
        project_id: str,
        analysis: ProjectBudgetAnalysis,
        rows: list[CostCodeProfitRow],
    ) -> "ProjectBudgetAnalysisResponse":
        return cls(
            project_id=project_id,
            rows=[CostCodeProfitResponse.from_row(row) for row in rows],
            total_invoiced=analysis.total_invoiced,
            total_actual_cost=analysis.total_actual_cost,
            total_profit=analysis.total_profit,
            overall_margin=analysis.overall_margin,
        )


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    detail: str
    code: str


class HealthResponse(BaseModel):
    status: str
    service: str
    data_source: str
