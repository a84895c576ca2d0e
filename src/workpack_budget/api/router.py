"""FastAPI router for the work pack budget API.

All routes are thin: they resolve the organization, call services and
return Pydantic response models. No business logic belongs here.

Endpoints:
  GET    /api/v1/work-packs/{id}/budget              Auto-generated budget (filterable)
  GET    /api/v1/work-packs/{id}/budget/categories   Budget and actual per category
  GET    /api/v1/work-packs/{id}/budget/search       Scored search over cost code buckets
  POST   /api/v1/work-packs/{id}/budget/refresh      Regenerate the budget view
  GET    /api/v1/work-packs/{id}/budget/state        Current state of the budget view
  GET    /api/v1/projects/{id}/budget-analysis       Invoiced vs actual cost per cost code
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query

from workpack_budget.api.dependencies import (
    get_organization_context,
    get_project_budget_service,
    get_refresh_coordinator,
    get_work_pack_budget_service,
)
from workpack_budget.api.schemas import (
    BudgetSearchHitResponse,
    BudgetSearchResponse,
    BudgetTotalsResponse,
    BudgetViewStateResponse,
    CategoryRollupListResponse,
    CategoryRollupResponse,
    CostCodeSummaryResponse,
    ProjectBudgetAnalysisResponse,
    WorkPackBudgetResponse,
)
from workpack_budget.core.budget_analysis import sort_profit_rows
from workpack_budget.core.category_rollup import list_categories, rollup_by_category
from workpack_budget.core.models import OrganizationContext
from workpack_budget.core.search import (
    ALL_CATEGORIES,
    BUDGET_SEARCH_FIELDS,
    advanced_search,
    filter_summaries,
)
from workpack_budget.core.services import (
    BudgetRefreshCoordinator,
    ProjectBudgetService,
    WorkPackBudgetService,
)
from workpack_budget.core.view_state import BudgetViewState

router = APIRouter(tags=["budget"])

Context = Annotated[OrganizationContext, Depends(get_organization_context)]
BudgetService = Annotated[WorkPackBudgetService, Depends(get_work_pack_budget_service)]


def _view_state_response(work_pack_id: str, state: BudgetViewState) -> BudgetViewStateResponse:
    return BudgetViewStateResponse(
        work_pack_id=work_pack_id,
        status=state.status.value,
        latest_request=state.latest_request,
        error=state.error,
        last_generated=state.last_generated,
        totals=BudgetTotalsResponse.from_totals(state.budget.totals) if state.budget else None,
    )


# ---------------------------------------------------------------------------
# Work pack budget
# ---------------------------------------------------------------------------


@router.get(
    "/work-packs/{work_pack_id}/budget",
    response_model=WorkPackBudgetResponse,
    summary="Get the auto-generated budget of a work pack",
)
async def get_work_pack_budget(
    work_pack_id: str,
    context: Context,
    service: BudgetService,
    search: Annotated[str, Query(description="Substring of cost code name or number")] = "",
    category: Annotated[str, Query(description="Category to keep, or 'all'")] = ALL_CATEGORIES,
) -> WorkPackBudgetResponse:
    """Aggregate line items and expenses of the work pack per cost code.

    Filters apply to the summaries only; totals and categories cover the
    whole work pack.
    """
    budget = await service.generate_budget(context, work_pack_id)
    visible = filter_summaries(budget.summaries, search, category)
    return WorkPackBudgetResponse(
        work_pack_id=work_pack_id,
        summaries=[CostCodeSummaryResponse.from_summary(summary) for summary in visible],
        totals=BudgetTotalsResponse.from_totals(budget.totals),
        categories=list_categories(budget.summaries),
        category_rollups=[
            CategoryRollupResponse.model_validate(rollup) for rollup in rollup_by_category(budget.summaries)
        ],
        generated_at=budget.generated_at,
    )


@router.get(
    "/work-packs/{work_pack_id}/budget/categories",
    response_model=CategoryRollupListResponse,
    summary="Get budget and actual totals per category",
)
async def get_budget_categories(
    work_pack_id: str,
    context: Context,
    service: BudgetService,
) -> CategoryRollupListResponse:
    budget = await service.generate_budget(context, work_pack_id)
    return CategoryRollupListResponse.from_rollups(work_pack_id, rollup_by_category(budget.summaries))


@router.get(
    "/work-packs/{work_pack_id}/budget/search",
    response_model=BudgetSearchResponse,
    summary="Search cost code buckets by name or number",
)
async def search_work_pack_budget(
    work_pack_id: str,
    context: Context,
    service: BudgetService,
    q: Annotated[str, Query(description="Search terms")] = "",
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> BudgetSearchResponse:
    """Rank cost code buckets with typo-tolerant matching on name and number."""
    budget = await service.generate_budget(context, work_pack_id)
    results = advanced_search(budget.summaries, q, BUDGET_SEARCH_FIELDS, max_results=limit)
    return BudgetSearchResponse(
        work_pack_id=work_pack_id,
        query=q,
        results=[
            BudgetSearchHitResponse(
                score=result.score,
                matched_fields=list(result.matched_fields),
                summary=CostCodeSummaryResponse.from_summary(result.item),
            )
            for result in results
        ],
    )


@router.post(
    "/work-packs/{work_pack_id}/budget/refresh",
    response_model=BudgetViewStateResponse,
    summary="Regenerate the budget view of a work pack",
)
async def refresh_work_pack_budget(
    work_pack_id: str,
    context: Context,
    service: BudgetService,
    coordinator: Annotated[BudgetRefreshCoordinator, Depends(get_refresh_coordinator)],
) -> BudgetViewStateResponse:
    """Run a refresh; a load failure is reported in the state, not as an error status."""
    state = await coordinator.refresh(service, context, work_pack_id)
    return _view_state_response(work_pack_id, state)


@router.get(
    "/work-packs/{work_pack_id}/budget/state",
    response_model=BudgetViewStateResponse,
    summary="Get the current state of the budget view",
)
async def get_work_pack_budget_state(
    work_pack_id: str,
    context: Context,
    coordinator: Annotated[BudgetRefreshCoordinator, Depends(get_refresh_coordinator)],
) -> BudgetViewStateResponse:
    return _view_state_response(work_pack_id, coordinator.state_for(context, work_pack_id))


# ---------------------------------------------------------------------------
# Project budget analysis
# ---------------------------------------------------------------------------


@router.get(
    "/projects/{project_id}/budget-analysis",
    response_model=ProjectBudgetAnalysisResponse,
    summary="Compare invoiced revenue with actual cost per cost code",
)
async def get_project_budget_analysis(
    project_id: str,
    context: Context,
    service: Annotated[ProjectBudgetService, Depends(get_project_budget_service)],
    sort_by: Annotated[Literal["profit", "margin", "invoiced", "cost"], Query()] = "profit",
    order: Annotated[Literal["asc", "desc"], Query()] = "desc",
) -> ProjectBudgetAnalysisResponse:
    analysis = await service.analyze(context, project_id)
    rows = sort_profit_rows(analysis.rows, sort_by=sort_by, descending=order == "desc")
    return ProjectBudgetAnalysisResponse.from_analysis(project_id, analysis, rows)
