"""Request-sequenced state of a work pack budget view.

A refresh may be triggered while a previous one is still in flight. Every
refresh gets a monotonically increasing request id; a result or failure is
applied only when it belongs to the latest request, so a slow response can
never overwrite a newer one.

All transitions are pure functions returning a new BudgetViewState.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from workpack_budget.core.models import WorkPackBudget


class ViewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOAD_FAILED = "load_failed"


@dataclass(frozen=True)
class BudgetViewState:
    """Snapshot of one budget view.

    Attributes:
        status: Current lifecycle status.
        latest_request: Id of the most recently issued refresh (0 = none yet).
        budget: Last successfully applied budget, kept while reloading or after a failure.
        error: User-facing message of the last failure, cleared on success.
        last_generated: When the applied budget was generated.
    """

    status: ViewStatus = ViewStatus.IDLE
    latest_request: int = 0
    budget: WorkPackBudget | None = None
    error: str | None = None
    last_generated: datetime | None = None

    @property
    def is_loading(self) -> bool:
        return self.status is ViewStatus.LOADING


def begin_refresh(state: BudgetViewState) -> tuple[BudgetViewState, int]:
    """Issue a new request id and mark the view as loading."""
    request_id = state.latest_request + 1
    return replace(state, status=ViewStatus.LOADING, latest_request=request_id), request_id


def is_current(state: BudgetViewState, request_id: int) -> bool:
    return request_id == state.latest_request


def apply_result(
    state: BudgetViewState,
    request_id: int,
    budget: WorkPackBudget,
) -> BudgetViewState:
    """Apply a successful result; results of superseded requests are discarded."""
    if not is_current(state, request_id):
        return state
    return replace(
        state,
        status=ViewStatus.READY,
        budget=budget,
        error=None,
        last_generated=budget.generated_at or datetime.now(timezone.utc),
    )


def apply_failure(state: BudgetViewState, request_id: int, message: str) -> BudgetViewState:
    """Apply a load failure; failures of superseded requests are discarded."""
    if not is_current(state, request_id):
        return state
    return replace(state, status=ViewStatus.LOAD_FAILED, error=message)
