"""Unit tests for the budget services and refresh coordination."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import make_line_item
from workpack_budget.core.budget_aggregator import aggregate
from workpack_budget.core.models import (
    ActualExpense,
    BudgetLineItem,
    CostCode,
    InvoiceLineItem,
    OrganizationContext,
    ProjectExpense,
    WorkPackBudget,
)
from workpack_budget.core.services import (
    BudgetRefreshCoordinator,
    ProjectBudgetService,
    WorkPackBudgetService,
)
from workpack_budget.core.view_state import ViewStatus
from workpack_budget.errors import BudgetLoadError, DataSourceError, ErrorCode, MalformedBudgetInputError
from workpack_budget.settings import Settings


def _make_source(
    line_items: list[BudgetLineItem] | None = None,
    expenses: list[ActualExpense] | None = None,
) -> AsyncMock:
    source = AsyncMock()
    source.fetch_budget_line_items = AsyncMock(return_value=line_items or [])
    source.fetch_budget_expenses = AsyncMock(return_value=expenses or [])
    return source


# ---------------------------------------------------------------------------
# WorkPackBudgetService tests
# ---------------------------------------------------------------------------


class TestWorkPackBudgetService:
    """Tests for WorkPackBudgetService."""

    @pytest.mark.asyncio
    async def test_generate_budget_aggregates_both_sources(
        self,
        settings: Settings,
        org_context: OrganizationContext,
        work_pack_id: str,
        sample_line_items: list[BudgetLineItem],
        sample_expenses: list[ActualExpense],
    ) -> None:
        source = _make_source(sample_line_items, sample_expenses)
        service = WorkPackBudgetService(line_item_source=source, expense_source=source, settings=settings)

        budget = await service.generate_budget(org_context, work_pack_id)

        source.fetch_budget_line_items.assert_awaited_once_with(org_context, work_pack_id)
        source.fetch_budget_expenses.assert_awaited_once_with(org_context, work_pack_id)
        assert budget.totals.total_budget == Decimal("250")
        assert budget.totals.total_actual == Decimal("200")
        assert budget.generated_at is not None
        assert budget.generated_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_fetch_failure_raises_budget_load_error(
        self,
        settings: Settings,
        org_context: OrganizationContext,
        work_pack_id: str,
        sample_line_items: list[BudgetLineItem],
    ) -> None:
        source = _make_source(sample_line_items)
        source.fetch_budget_expenses = AsyncMock(
            side_effect=DataSourceError("backend down", details={"path": "rpc/get_work_pack_budget_expenses"})
        )
        service = WorkPackBudgetService(line_item_source=source, expense_source=source, settings=settings)

        with pytest.raises(BudgetLoadError) as exc_info:
            await service.generate_budget(org_context, work_pack_id)

        assert exc_info.value.code is ErrorCode.BUDGET_LOAD_FAILED
        assert "refresh" in exc_info.value.message
        assert exc_info.value.details["work_pack_id"] == work_pack_id
        assert isinstance(exc_info.value.__cause__, DataSourceError)

    @pytest.mark.asyncio
    async def test_settings_policy_is_applied(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
    ) -> None:
        settings = Settings(negative_amount_policy="reject")
        source = _make_source([make_line_item("i1", "cc-01", "-1", "5", number="01")])
        service = WorkPackBudgetService(line_item_source=source, expense_source=source, settings=settings)

        with pytest.raises(MalformedBudgetInputError):
            await service.generate_budget(org_context, work_pack_id)

    @pytest.mark.asyncio
    async def test_default_category_from_settings(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
    ) -> None:
        settings = Settings(default_cost_code_category="uncategorized")
        source = _make_source([make_line_item("i1", "cc-01", "1", "5", number="01")])
        service = WorkPackBudgetService(line_item_source=source, expense_source=source, settings=settings)

        budget = await service.generate_budget(org_context, work_pack_id)

        assert budget.summaries[0].category == "uncategorized"


# ---------------------------------------------------------------------------
# ProjectBudgetService tests
# ---------------------------------------------------------------------------


class TestProjectBudgetService:
    """Tests for ProjectBudgetService."""

    @pytest.fixture
    def cost_code_source(self) -> AsyncMock:
        source = AsyncMock()
        source.list_cost_codes = AsyncMock(
            return_value=[CostCode(id="cc-01", code="01", name="Concrete", category="structure")]
        )
        return source

    @pytest.fixture
    def ledger_source(self) -> AsyncMock:
        source = AsyncMock()
        source.list_project_expenses = AsyncMock(
            return_value=[ProjectExpense(cost_code_id="cc-01", amount=Decimal("300"))]
        )
        source.list_project_invoice_items = AsyncMock(
            return_value=[InvoiceLineItem(invoice_id="inv-1", cost_code_id="cc-01", total_price=Decimal("400"))]
        )
        return source

    @pytest.mark.asyncio
    async def test_analyze(
        self,
        cost_code_source: AsyncMock,
        ledger_source: AsyncMock,
        org_context: OrganizationContext,
    ) -> None:
        service = ProjectBudgetService(cost_code_source=cost_code_source, ledger_source=ledger_source)

        analysis = await service.analyze(org_context, "proj-1")

        ledger_source.list_project_expenses.assert_awaited_once_with(org_context, "proj-1")
        assert analysis.total_profit == Decimal("100")
        assert analysis.rows[0].margin == Decimal("25")

    @pytest.mark.asyncio
    async def test_analyze_load_failure(
        self,
        cost_code_source: AsyncMock,
        ledger_source: AsyncMock,
        org_context: OrganizationContext,
    ) -> None:
        cost_code_source.list_cost_codes = AsyncMock(side_effect=DataSourceError("timeout"))
        service = ProjectBudgetService(cost_code_source=cost_code_source, ledger_source=ledger_source)

        with pytest.raises(BudgetLoadError, match="budget analysis"):
            await service.analyze(org_context, "proj-1")


# ---------------------------------------------------------------------------
# BudgetRefreshCoordinator tests
# ---------------------------------------------------------------------------


class _ControlledService:
    """Budget service whose responses are released explicitly by the test."""

    def __init__(self) -> None:
        self.calls = 0
        self.gates: list[asyncio.Event] = []
        self.outcomes: list[WorkPackBudget | Exception] = []

    def push(self, outcome: WorkPackBudget | Exception) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates.append(gate)
        self.outcomes.append(outcome)
        return gate

    async def generate_budget(self, context: OrganizationContext, work_pack_id: str) -> WorkPackBudget:
        index = self.calls
        self.calls += 1
        await self.gates[index].wait()
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestBudgetRefreshCoordinator:
    """Tests for BudgetRefreshCoordinator."""

    @pytest.fixture
    def first_budget(self, sample_line_items: list[BudgetLineItem]) -> WorkPackBudget:
        return aggregate(sample_line_items[:1], [])

    @pytest.fixture
    def second_budget(
        self,
        sample_line_items: list[BudgetLineItem],
        sample_expenses: list[ActualExpense],
    ) -> WorkPackBudget:
        return aggregate(sample_line_items, sample_expenses)

    @pytest.mark.asyncio
    async def test_refresh_success(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
        second_budget: WorkPackBudget,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        service = AsyncMock()
        service.generate_budget = AsyncMock(return_value=second_budget)

        state = await coordinator.refresh(service, org_context, work_pack_id)

        assert state.status is ViewStatus.READY
        assert state.budget is second_budget
        assert coordinator.state_for(org_context, work_pack_id) is state

    @pytest.mark.asyncio
    async def test_refresh_failure_sets_load_failed(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        service = AsyncMock()
        service.generate_budget = AsyncMock(side_effect=BudgetLoadError("Unable to generate budget"))

        state = await coordinator.refresh(service, org_context, work_pack_id)

        assert state.status is ViewStatus.LOAD_FAILED
        assert state.error == "Unable to generate budget"
        assert state.budget is None

    @pytest.mark.asyncio
    async def test_slow_first_response_does_not_overwrite_second(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
        first_budget: WorkPackBudget,
        second_budget: WorkPackBudget,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        service = _ControlledService()
        first_gate = service.push(first_budget)
        second_gate = service.push(second_budget)

        first = asyncio.create_task(coordinator.refresh(service, org_context, work_pack_id))
        await asyncio.sleep(0)
        second = asyncio.create_task(coordinator.refresh(service, org_context, work_pack_id))
        await asyncio.sleep(0)

        second_gate.set()
        await second
        first_gate.set()
        await first

        state = coordinator.state_for(org_context, work_pack_id)
        assert state.latest_request == 2
        assert state.status is ViewStatus.READY
        assert state.budget is second_budget

    @pytest.mark.asyncio
    async def test_stale_failure_is_ignored(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
        second_budget: WorkPackBudget,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        service = _ControlledService()
        first_gate = service.push(BudgetLoadError("Unable to generate budget"))
        second_gate = service.push(second_budget)

        first = asyncio.create_task(coordinator.refresh(service, org_context, work_pack_id))
        await asyncio.sleep(0)
        second = asyncio.create_task(coordinator.refresh(service, org_context, work_pack_id))
        await asyncio.sleep(0)

        second_gate.set()
        await second
        first_gate.set()
        await first

        state = coordinator.state_for(org_context, work_pack_id)
        assert state.status is ViewStatus.READY
        assert state.error is None

    @pytest.mark.asyncio
    async def test_states_are_kept_per_organization(
        self,
        work_pack_id: str,
        second_budget: WorkPackBudget,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        service = AsyncMock()
        service.generate_budget = AsyncMock(return_value=second_budget)
        org_a = OrganizationContext(organization_id="org-a")
        org_b = OrganizationContext(organization_id="org-b")

        await coordinator.refresh(service, org_a, work_pack_id)

        assert coordinator.state_for(org_a, work_pack_id).status is ViewStatus.READY
        assert coordinator.state_for(org_b, work_pack_id).status is ViewStatus.IDLE

    @pytest.mark.asyncio
    async def test_rejected_input_settles_as_load_failed(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        source = _make_source([make_line_item("i1", "cc-01", "-1", "5", number="01")])
        service = WorkPackBudgetService(
            line_item_source=source,
            expense_source=source,
            settings=Settings(negative_amount_policy="reject"),
        )

        state = await coordinator.refresh(service, org_context, work_pack_id)

        assert state.status is ViewStatus.LOAD_FAILED
        assert state.error
        assert not state.is_loading
        assert coordinator.state_for(org_context, work_pack_id) is state

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reraised_and_view_settles(
        self,
        org_context: OrganizationContext,
        work_pack_id: str,
    ) -> None:
        coordinator = BudgetRefreshCoordinator()
        service = AsyncMock()
        service.generate_budget = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await coordinator.refresh(service, org_context, work_pack_id)

        state = coordinator.state_for(org_context, work_pack_id)
        assert state.status is ViewStatus.LOAD_FAILED
        assert state.error is not None
        assert "boom" not in state.error

    @pytest.mark.asyncio
    async def test_least_recently_refreshed_view_is_evicted(
        self,
        org_context: OrganizationContext,
        second_budget: WorkPackBudget,
    ) -> None:
        coordinator = BudgetRefreshCoordinator(max_views=2)
        service = AsyncMock()
        service.generate_budget = AsyncMock(return_value=second_budget)

        await coordinator.refresh(service, org_context, "wp-1")
        await coordinator.refresh(service, org_context, "wp-2")
        await coordinator.refresh(service, org_context, "wp-1")
        await coordinator.refresh(service, org_context, "wp-3")

        assert len(coordinator) == 2
        assert coordinator.state_for(org_context, "wp-1").status is ViewStatus.READY
        assert coordinator.state_for(org_context, "wp-2").status is ViewStatus.IDLE
        assert coordinator.state_for(org_context, "wp-3").status is ViewStatus.READY

    @pytest.mark.asyncio
    async def test_loading_view_is_not_evicted(
        self,
        org_context: OrganizationContext,
        second_budget: WorkPackBudget,
    ) -> None:
        coordinator = BudgetRefreshCoordinator(max_views=1)
        slow = _ControlledService()
        gate = slow.push(second_budget)
        fast = AsyncMock()
        fast.generate_budget = AsyncMock(return_value=second_budget)

        pending = asyncio.create_task(coordinator.refresh(slow, org_context, "wp-slow"))
        await asyncio.sleep(0)
        await coordinator.refresh(fast, org_context, "wp-fast")

        assert coordinator.state_for(org_context, "wp-slow").is_loading

        gate.set()
        state = await pending

        assert state.status is ViewStatus.READY
        assert state.latest_request == 1

    def test_max_views_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BudgetRefreshCoordinator(max_views=0)
