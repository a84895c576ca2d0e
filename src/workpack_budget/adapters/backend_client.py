"""HTTP client for the managed backend's REST and RPC API.

The backend exposes tables and Postgres functions over a PostgREST-style
API:

    POST {backend_url}/rest/v1/rpc/{function}      call a database function
    GET  {backend_url}/rest/v1/{table}?select=...  query a table

The work pack budget inputs come from two RPC functions,
``get_work_pack_budget_items`` and ``get_work_pack_budget_expenses``, which
already join line items and expenses with their cost codes.
"""

from typing import Any

import httpx
import structlog

from workpack_budget.adapters.row_mapping import (
    cost_code_from_row,
    expense_from_row,
    invoice_items_from_invoice_rows,
    line_item_from_row,
    project_expense_from_row,
)
from workpack_budget.core.models import (
    ActualExpense,
    BudgetLineItem,
    CostCode,
    InvoiceLineItem,
    OrganizationContext,
    ProjectExpense,
)
from workpack_budget.errors import DataSourceError
from workpack_budget.settings import Settings

logger = structlog.get_logger(__name__)


class BackendRestClient:
    """Async HTTP client for the backend REST/RPC API.

    Implements IBudgetLineItemSource, IBudgetExpenseSource, ICostCodeSource
    and IProjectLedgerSource from core/interfaces.py. Uses httpx with the
    configured timeout; every HTTP or connection error is logged and raised
    as DataSourceError.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize BackendRestClient with service settings.

        Args:
            settings: Service settings containing backend_url, API key and timeout.
            transport: Optional httpx transport, used by tests to stub the backend.
        """
        self._base_url = settings.backend_url.rstrip("/")
        self._api_key = settings.backend_api_key
        self._timeout = settings.backend_timeout_seconds
        self._transport = transport

    def _headers(self, context: OrganizationContext) -> dict[str, str]:
        token = context.access_token or self._api_key
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        context: OrganizationContext,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        url = f"{self._base_url}/rest/v1/{path}"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(context),
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "backend_http_error",
                    url=url,
                    status_code=exc.response.status_code,
                    response_text=exc.response.text[:500],
                )
                raise DataSourceError(
                    f"Backend request to '{path}' failed with status {exc.response.status_code}",
                    details={"path": path, "status_code": exc.response.status_code},
                ) from exc
            except httpx.RequestError as exc:
                logger.error("backend_connection_error", url=url, error=str(exc))
                raise DataSourceError(
                    f"Backend request to '{path}' could not be completed",
                    details={"path": path, "error": str(exc)},
                ) from exc
            except ValueError as exc:
                logger.error("backend_invalid_json", url=url, error=str(exc))
                raise DataSourceError(
                    f"Backend response from '{path}' was not valid JSON",
                    details={"path": path},
                ) from exc

        # A null RPC result means "no rows"
        if data is None:
            return []
        if not isinstance(data, list):
            raise DataSourceError(
                f"Backend response from '{path}' was not a list of rows",
                details={"path": path, "type": type(data).__name__},
            )
        return data

    async def _rpc(
        self,
        context: OrganizationContext,
        function: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        return await self._request("POST", f"rpc/{function}", context, json=params)

    async def fetch_budget_line_items(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> list[BudgetLineItem]:
        """Fetch the work pack's line items with their cost codes.

        Raises:
            DataSourceError: On HTTP, connection or payload errors.
        """
        rows = await self._rpc(context, "get_work_pack_budget_items", {"p_work_pack_id": work_pack_id})
        return [line_item_from_row(row) for row in rows]

    async def fetch_budget_expenses(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> list[ActualExpense]:
        """Fetch the work pack's expenses with their cost codes.

        Raises:
            DataSourceError: On HTTP, connection or payload errors.
        """
        rows = await self._rpc(context, "get_work_pack_budget_expenses", {"p_work_pack_id": work_pack_id})
        return [expense_from_row(row) for row in rows]

    async def list_cost_codes(self, context: OrganizationContext) -> list[CostCode]:
        rows = await self._request(
            "GET",
            "cost_codes",
            context,
            params={
                "select": "id,code,name,category",
                "organization_id": f"eq.{context.organization_id}",
                "order": "code",
            },
        )
        return [cost_code_from_row(row) for row in rows]

    async def list_project_expenses(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> list[ProjectExpense]:
        rows = await self._request(
            "GET",
            "expenses",
            context,
            params={"select": "id,cost_code_id,amount", "project_id": f"eq.{project_id}"},
        )
        return [project_expense_from_row(row) for row in rows]

    async def list_project_invoice_items(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> list[InvoiceLineItem]:
        rows = await self._request(
            "GET",
            "invoices",
            context,
            params={
                "select": "id,invoice_items(cost_code_id,total_price)",
                "project_id": f"eq.{project_id}",
            },
        )
        return invoice_items_from_invoice_rows(rows)

    async def health_check(self) -> bool:
        """Verify the backend REST API is reachable.

        Returns:
            True if the API root responds without a server error, False otherwise.
        """
        url = f"{self._base_url}/rest/v1/"
        headers = {"apikey": self._api_key} if self._api_key else {}
        try:
            async with httpx.AsyncClient(timeout=5, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
                return response.status_code < 500
        except httpx.RequestError as exc:
            logger.warning("backend_health_check_failed", error=str(exc))
            return False
