"""FastAPI dependency factories for the work pack budget API.

The organization is taken from the ``X-Organization-ID`` header and passed
explicitly to every service call. The data source adapter is chosen by
``Settings.data_source``.
"""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header

from workpack_budget.adapters.backend_client import BackendRestClient
from workpack_budget.adapters.database import get_db_session
from workpack_budget.adapters.repositories import SqlBudgetSource
from workpack_budget.core.models import OrganizationContext
from workpack_budget.core.services import (
    BudgetRefreshCoordinator,
    ProjectBudgetService,
    WorkPackBudgetService,
)
from workpack_budget.errors import InvalidRequestError
from workpack_budget.settings import Settings, get_settings

BudgetSource = BackendRestClient | SqlBudgetSource


@lru_cache(maxsize=1)
def get_refresh_coordinator() -> BudgetRefreshCoordinator:
    """Process-wide refresh coordinator holding the view state of every work pack."""
    return BudgetRefreshCoordinator(max_views=get_settings().refresh_max_views)


def get_organization_context(
    x_organization_id: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> OrganizationContext:
    """Build the OrganizationContext of the current request.

    Raises:
        InvalidRequestError: If the X-Organization-ID header is missing or blank.
    """
    organization_id = (x_organization_id or "").strip()
    if not organization_id:
        raise InvalidRequestError("X-Organization-ID header is required")

    access_token = None
    if authorization and authorization.lower().startswith("bearer "):
        access_token = authorization[7:].strip() or None

    return OrganizationContext(
        organization_id=organization_id,
        user_id=x_user_id or None,
        access_token=access_token,
    )


async def get_budget_source(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[BudgetSource, None]:
    """Yield the configured data source; SQL sources hold a session for the request."""
    if settings.data_source == "sql":
        async for session in get_db_session():
            yield SqlBudgetSource(session)
    else:
        yield BackendRestClient(settings)


def get_work_pack_budget_service(
    source: Annotated[BudgetSource, Depends(get_budget_source)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> WorkPackBudgetService:
    return WorkPackBudgetService(line_item_source=source, expense_source=source, settings=settings)


def get_project_budget_service(
    source: Annotated[BudgetSource, Depends(get_budget_source)],
) -> ProjectBudgetService:
    return ProjectBudgetService(cost_code_source=source, ledger_source=source)
