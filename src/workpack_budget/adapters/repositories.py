"""SQLAlchemy data source reading budget inputs straight from Postgres.

Used when ``data_source="sql"``. Reads the same two set-returning functions
the REST API exposes as RPCs, plus the cost code, expense and invoice tables
for the project analysis. Rows go through the same mapping as REST payloads.
"""

import asyncio
from typing import Any

import structlog
from sqlalchemy import column, select, table, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable

from workpack_budget.adapters.row_mapping import (
    cost_code_from_row,
    expense_from_row,
    invoice_item_from_row,
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

logger = structlog.get_logger(__name__)

_cost_codes = table(
    "cost_codes",
    column("id"),
    column("code"),
    column("name"),
    column("category"),
    column("organization_id"),
)
_expenses = table("expenses", column("id"), column("cost_code_id"), column("amount"), column("project_id"))
_invoices = table("invoices", column("id"), column("project_id"))
_invoice_items = table(
    "invoice_items",
    column("invoice_id"),
    column("cost_code_id"),
    column("total_price"),
)

_BUDGET_ITEMS_QUERY = text("SELECT * FROM get_work_pack_budget_items(:work_pack_id)")
_BUDGET_EXPENSES_QUERY = text("SELECT * FROM get_work_pack_budget_expenses(:work_pack_id)")


class SqlBudgetSource:
    """Budget inputs read through an AsyncSession.

    Implements IBudgetLineItemSource, IBudgetExpenseSource, ICostCodeSource
    and IProjectLedgerSource. SQLAlchemy errors are logged and raised as
    DataSourceError.

    One AsyncSession runs one statement at a time, so queries issued
    concurrently through the same source (e.g. under asyncio.gather) are
    serialised on a lock owned by the source.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize with an async database session."""
        self._session = session
        self._lock = asyncio.Lock()

    async def _fetch(
        self,
        statement: Executable,
        params: dict[str, Any] | None = None,
        *,
        source: str,
    ) -> list[dict[str, Any]]:
        async with self._lock:
            try:
                result = await self._session.execute(statement, params or {})
            except SQLAlchemyError as exc:
                logger.error("budget_sql_query_failed", source=source, error=str(exc))
                raise DataSourceError(
                    f"Database query for '{source}' failed",
                    details={"source": source},
                ) from exc
            return [dict(row) for row in result.mappings().all()]

    async def fetch_budget_line_items(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> list[BudgetLineItem]:
        rows = await self._fetch(
            _BUDGET_ITEMS_QUERY,
            {"work_pack_id": work_pack_id},
            source="get_work_pack_budget_items",
        )
        return [line_item_from_row(row) for row in rows]

    async def fetch_budget_expenses(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> list[ActualExpense]:
        rows = await self._fetch(
            _BUDGET_EXPENSES_QUERY,
            {"work_pack_id": work_pack_id},
            source="get_work_pack_budget_expenses",
        )
        return [expense_from_row(row) for row in rows]

    async def list_cost_codes(self, context: OrganizationContext) -> list[CostCode]:
        """List the organization's cost codes ordered by code."""
        query = (
            select(_cost_codes.c.id, _cost_codes.c.code, _cost_codes.c.name, _cost_codes.c.category)
            .where(_cost_codes.c.organization_id == context.organization_id)
            .order_by(_cost_codes.c.code)
        )
        rows = await self._fetch(query, source="cost_codes")
        return [cost_code_from_row(row) for row in rows]

    async def list_project_expenses(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> list[ProjectExpense]:
        query = select(_expenses.c.id, _expenses.c.cost_code_id, _expenses.c.amount).where(
            _expenses.c.project_id == project_id
        )
        rows = await self._fetch(query, source="expenses")
        return [project_expense_from_row(row) for row in rows]

    async def list_project_invoice_items(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> list[InvoiceLineItem]:
        query = (
            select(
                _invoice_items.c.invoice_id,
                _invoice_items.c.cost_code_id,
                _invoice_items.c.total_price,
            )
            .join(_invoices, _invoices.c.id == _invoice_items.c.invoice_id)
            .where(_invoices.c.project_id == project_id)
        )
        rows = await self._fetch(query, source="invoice_items")
        return [invoice_item_from_row(row) for row in rows]
