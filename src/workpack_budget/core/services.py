"""Business logic services for the work pack budget service.

All services depend on source interfaces (not concrete implementations) and
receive dependencies via constructor injection. No framework code (FastAPI,
SQLAlchemy, httpx) belongs here.

Key invariants:
- WorkPackBudgetService: Fetches line items and expenses concurrently and
  aggregates only when both fetches succeed; any fetch failure becomes a
  BudgetLoadError and no partial budget is produced.
- ProjectBudgetService: Same all-or-nothing rule for cost codes, expenses
  and invoice items of a project.
- BudgetRefreshCoordinator: Last issued refresh wins; results of superseded
  refreshes are discarded. Every refresh settles its view, including on
  unexpected errors, and the number of retained views is bounded.
"""

import asyncio
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime, timezone

import structlog

from workpack_budget.core.budget_aggregator import aggregate
from workpack_budget.core.budget_analysis import analyze_project_budget
from workpack_budget.core.interfaces import (
    IBudgetExpenseSource,
    IBudgetLineItemSource,
    ICostCodeSource,
    IProjectLedgerSource,
)
from workpack_budget.core.models import (
    OrganizationContext,
    ProjectBudgetAnalysis,
    WorkPackBudget,
)
from workpack_budget.core.view_state import (
    BudgetViewState,
    apply_failure,
    apply_result,
    begin_refresh,
)
from workpack_budget.errors import BudgetLoadError, BudgetServiceError, DataSourceError
from workpack_budget.settings import Settings

logger = structlog.get_logger(__name__)

REFRESH_FAILED_MESSAGE = "Unable to generate budget for this work pack. Please refresh to try again."


class WorkPackBudgetService:
    """Generate the auto-budget of a work pack from its line items and expenses.

    The budget is recomputed from scratch on every call and never persisted.
    """

    def __init__(
        self,
        line_item_source: IBudgetLineItemSource,
        expense_source: IBudgetExpenseSource,
        settings: Settings,
    ) -> None:
        """Initialize WorkPackBudgetService with its data sources."""
        self._line_item_source = line_item_source
        self._expense_source = expense_source
        self._settings = settings

    async def generate_budget(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> WorkPackBudget:
        """Fetch both budget inputs and aggregate them per cost code.

        Args:
            context: Organization the work pack belongs to.
            work_pack_id: Work pack to budget.

        Returns:
            WorkPackBudget stamped with generated_at (UTC).

        Raises:
            BudgetLoadError: If either input could not be fetched.
            MalformedBudgetInputError: Under the ``reject`` negative amount policy.
        """
        try:
            line_items, expenses = await asyncio.gather(
                self._line_item_source.fetch_budget_line_items(context, work_pack_id),
                self._expense_source.fetch_budget_expenses(context, work_pack_id),
            )
        except DataSourceError as exc:
            logger.error(
                "work_pack_budget_load_failed",
                organization_id=context.organization_id,
                work_pack_id=work_pack_id,
                error=exc.message,
            )
            raise BudgetLoadError(
                REFRESH_FAILED_MESSAGE,
                details={"work_pack_id": work_pack_id, **exc.details},
            ) from exc

        budget = aggregate(
            line_items,
            expenses,
            default_category=self._settings.default_cost_code_category,
            negative_amounts=self._settings.negative_amount_policy,
        )
        budget = replace(budget, generated_at=datetime.now(timezone.utc))

        logger.info(
            "work_pack_budget_generated",
            organization_id=context.organization_id,
            work_pack_id=work_pack_id,
            items_count=budget.totals.items_count,
            cost_codes_count=budget.totals.cost_codes_count,
            total_budget=str(budget.totals.total_budget),
            total_actual=str(budget.totals.total_actual),
            adjusted_entries=budget.totals.adjusted_entries,
        )
        return budget


class ProjectBudgetService:
    """Compare invoiced revenue with actual cost per cost code for a project."""

    def __init__(
        self,
        cost_code_source: ICostCodeSource,
        ledger_source: IProjectLedgerSource,
    ) -> None:
        self._cost_code_source = cost_code_source
        self._ledger_source = ledger_source

    async def analyze(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> ProjectBudgetAnalysis:
        """Load cost codes, expenses and invoice items and compute profit per cost code.

        Raises:
            BudgetLoadError: If any of the three inputs could not be fetched.
        """
        try:
            cost_codes, expenses, invoice_items = await asyncio.gather(
                self._cost_code_source.list_cost_codes(context),
                self._ledger_source.list_project_expenses(context, project_id),
                self._ledger_source.list_project_invoice_items(context, project_id),
            )
        except DataSourceError as exc:
            logger.error(
                "project_budget_analysis_load_failed",
                organization_id=context.organization_id,
                project_id=project_id,
                error=exc.message,
            )
            raise BudgetLoadError(
                "Unable to load budget analysis for this project.",
                details={"project_id": project_id, **exc.details},
            ) from exc

        analysis = analyze_project_budget(cost_codes, expenses, invoice_items)
        logger.info(
            "project_budget_analysis_generated",
            organization_id=context.organization_id,
            project_id=project_id,
            cost_codes=len(analysis.rows),
            total_profit=str(analysis.total_profit),
        )
        return analysis


class BudgetRefreshCoordinator:
    """Drive budget view state through request-sequenced refreshes.

    Holds one BudgetViewState per (organization, work pack). Overlapping
    refreshes are allowed; whichever was issued last determines the final
    state, regardless of the order in which responses arrive.

    At most ``max_views`` states are kept. When the limit is exceeded the
    least recently refreshed views that are not loading are dropped; a
    dropped view reads as idle again. Loading views are never dropped, so a
    request id still in flight cannot be issued a second time.
    """

    def __init__(self, max_views: int = 1024) -> None:
        if max_views < 1:
            raise ValueError("max_views must be at least 1")
        self._max_views = max_views
        self._states: OrderedDict[tuple[str, str], BudgetViewState] = OrderedDict()

    def __len__(self) -> int:
        return len(self._states)

    def state_for(self, context: OrganizationContext, work_pack_id: str) -> BudgetViewState:
        return self._states.get((context.organization_id, work_pack_id), BudgetViewState())

    def _store(self, key: tuple[str, str], state: BudgetViewState) -> None:
        self._states[key] = state
        self._states.move_to_end(key)
        if len(self._states) <= self._max_views:
            return
        evictable = [k for k, s in self._states.items() if k != key and not s.is_loading]
        for old_key in evictable[: len(self._states) - self._max_views]:
            del self._states[old_key]
            logger.debug("work_pack_budget_view_evicted", organization_id=old_key[0], work_pack_id=old_key[1])

    async def refresh(
        self,
        service: WorkPackBudgetService,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> BudgetViewState:
        """Regenerate the budget and apply it if no newer refresh was issued meanwhile.

        Every outcome settles the view: service errors are applied as a load
        failure, and any other exception is applied as a load failure before
        being re-raised.

        Returns:
            The view state after this refresh settled.
        """
        key = (context.organization_id, work_pack_id)
        state, request_id = begin_refresh(self.state_for(context, work_pack_id))
        self._store(key, state)

        try:
            budget = await service.generate_budget(context, work_pack_id)
        except BudgetServiceError as exc:
            self._store(key, apply_failure(self.state_for(context, work_pack_id), request_id, exc.message))
        except Exception:
            logger.exception(
                "work_pack_budget_refresh_crashed",
                organization_id=context.organization_id,
                work_pack_id=work_pack_id,
                request_id=request_id,
            )
            current = self.state_for(context, work_pack_id)
            self._store(key, apply_failure(current, request_id, REFRESH_FAILED_MESSAGE))
            raise
        else:
            self._store(key, apply_result(self.state_for(context, work_pack_id), request_id, budget))

        settled = self.state_for(context, work_pack_id)
        if settled.latest_request != request_id:
            logger.debug(
                "work_pack_budget_refresh_superseded",
                work_pack_id=work_pack_id,
                request_id=request_id,
                latest_request=settled.latest_request,
            )
        return settled
