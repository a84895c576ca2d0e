"""Unit tests for request-sequenced budget view state transitions."""

from datetime import datetime, timezone

from workpack_budget.core.budget_aggregator import aggregate
from workpack_budget.core.models import WorkPackBudget
from workpack_budget.core.view_state import (
    BudgetViewState,
    ViewStatus,
    apply_failure,
    apply_result,
    begin_refresh,
    is_current,
)


def _budget() -> WorkPackBudget:
    budget = aggregate([], [])
    return WorkPackBudget(
        summaries=budget.summaries,
        totals=budget.totals,
        generated_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
    )


def test_initial_state_is_idle() -> None:
    state = BudgetViewState()

    assert state.status is ViewStatus.IDLE
    assert state.latest_request == 0
    assert not state.is_loading


def test_begin_refresh_issues_increasing_ids() -> None:
    state, first = begin_refresh(BudgetViewState())
    state, second = begin_refresh(state)

    assert (first, second) == (1, 2)
    assert state.is_loading
    assert is_current(state, second)
    assert not is_current(state, first)


def test_result_of_latest_request_is_applied() -> None:
    state, request_id = begin_refresh(BudgetViewState(error="previous failure"))
    budget = _budget()

    state = apply_result(state, request_id, budget)

    assert state.status is ViewStatus.READY
    assert state.budget is budget
    assert state.error is None
    assert state.last_generated == budget.generated_at


def test_stale_result_is_discarded() -> None:
    state, stale = begin_refresh(BudgetViewState())
    state, latest = begin_refresh(state)

    after = apply_result(state, stale, _budget())

    assert after is state
    assert after.is_loading


def test_failure_keeps_last_budget() -> None:
    state, first = begin_refresh(BudgetViewState())
    state = apply_result(state, first, _budget())
    state, second = begin_refresh(state)

    state = apply_failure(state, second, "Unable to generate budget")

    assert state.status is ViewStatus.LOAD_FAILED
    assert state.error == "Unable to generate budget"
    assert state.budget is not None


def test_stale_failure_is_discarded() -> None:
    state, stale = begin_refresh(BudgetViewState())
    state, latest = begin_refresh(state)
    state = apply_result(state, latest, _budget())

    assert apply_failure(state, stale, "late failure") is state
    assert state.status is ViewStatus.READY
