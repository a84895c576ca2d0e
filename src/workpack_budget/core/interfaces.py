"""Abstract interfaces (Protocol classes) for the work pack budget service.

Services depend on these interfaces, not concrete implementations, so the
backend REST client, the SQL adapter and test doubles are interchangeable.
"""

from typing import Protocol, runtime_checkable

from workpack_budget.core.models import (
    ActualExpense,
    BudgetLineItem,
    CostCode,
    InvoiceLineItem,
    OrganizationContext,
    ProjectExpense,
)


@runtime_checkable
class IBudgetLineItemSource(Protocol):
    """Read access to the planned line items of a work pack."""

    async def fetch_budget_line_items(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> list[BudgetLineItem]:
        """Return every line item of the work pack with its cost code reference."""
        ...


@runtime_checkable
class IBudgetExpenseSource(Protocol):
    """Read access to the recorded expenses of a work pack."""

    async def fetch_budget_expenses(
        self,
        context: OrganizationContext,
        work_pack_id: str,
    ) -> list[ActualExpense]:
        """Return every expense of the work pack with its cost code reference."""
        ...


@runtime_checkable
class ICostCodeSource(Protocol):
    """Read access to the organization's cost codes."""

    async def list_cost_codes(self, context: OrganizationContext) -> list[CostCode]:
        """Return all cost codes ordered by code."""
        ...


@runtime_checkable
class IProjectLedgerSource(Protocol):
    """Read access to the expenses and invoice lines of a project."""

    async def list_project_expenses(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> list[ProjectExpense]:
        """Return the project's expenses (cost code and amount only)."""
        ...

    async def list_project_invoice_items(
        self,
        context: OrganizationContext,
        project_id: str,
    ) -> list[InvoiceLineItem]:
        """Return the line items of every invoice of the project."""
        ...
