"""Mapping of backend rows (JSON objects or SQL result mappings) to core value objects.

Numeric fields may arrive as JSON numbers, numeric strings or SQL NUMERIC
values. Missing or unparseable numbers map to None and are logged; the
aggregator then counts them as zero and reports them as adjusted entries.
"""

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from workpack_budget.core.models import (
    DEFAULT_UNIT,
    ActualExpense,
    BudgetLineItem,
    CostCode,
    InvoiceLineItem,
    ProjectExpense,
)

logger = structlog.get_logger(__name__)


def parse_amount(value: Any, *, field: str, row_id: str) -> Decimal | None:
    """Convert a raw numeric value to Decimal, or None when absent or unusable."""
    if value is None:
        return None
    if isinstance(value, bool):
        logger.warning("budget_row_numeric_unparseable", row_id=row_id, field=field, value=repr(value))
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.warning("budget_row_numeric_unparseable", row_id=row_id, field=field, value=repr(value))
        return None
    if not amount.is_finite():
        logger.warning("budget_row_numeric_unparseable", row_id=row_id, field=field, value=repr(value))
        return None
    return amount


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _str(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def line_item_from_row(row: Mapping[str, Any]) -> BudgetLineItem:
    """Map a ``get_work_pack_budget_items`` row to a BudgetLineItem."""
    row_id = _str(row.get("id"))
    return BudgetLineItem(
        id=row_id,
        cost_code_id=_optional_str(row.get("cost_code_id")),
        cost_code_name=_str(row.get("cost_code_name")),
        cost_code_number=_str(row.get("cost_code_number")),
        cost_code_category=_optional_str(row.get("cost_code_category")),
        line_item_name=_str(row.get("line_item_name")),
        quantity=parse_amount(row.get("quantity"), field="quantity", row_id=row_id),
        price=parse_amount(row.get("price"), field="price", row_id=row_id),
        unit=_optional_str(row.get("unit")) or DEFAULT_UNIT,
    )


def expense_from_row(row: Mapping[str, Any]) -> ActualExpense:
    """Map a ``get_work_pack_budget_expenses`` row to an ActualExpense."""
    row_id = _str(row.get("id"))
    return ActualExpense(
        id=row_id,
        cost_code_id=_optional_str(row.get("cost_code_id")),
        cost_code_name=_str(row.get("cost_code_name")),
        cost_code_number=_str(row.get("cost_code_number")),
        cost_code_category=_optional_str(row.get("cost_code_category")),
        description=_str(row.get("description")),
        amount=parse_amount(row.get("amount"), field="amount", row_id=row_id),
        category=_str(row.get("category")),
        vendor=_optional_str(row.get("vendor")),
    )


def cost_code_from_row(row: Mapping[str, Any]) -> CostCode:
    return CostCode(
        id=_str(row.get("id")),
        code=_str(row.get("code")),
        name=_str(row.get("name")),
        category=_str(row.get("category"), default="general"),
    )


def project_expense_from_row(row: Mapping[str, Any]) -> ProjectExpense:
    return ProjectExpense(
        cost_code_id=_optional_str(row.get("cost_code_id")),
        amount=parse_amount(row.get("amount"), field="amount", row_id=_str(row.get("id"))),
    )


def invoice_item_from_row(row: Mapping[str, Any], invoice_id: str | None = None) -> InvoiceLineItem:
    invoice = invoice_id if invoice_id is not None else _str(row.get("invoice_id"))
    return InvoiceLineItem(
        invoice_id=invoice,
        cost_code_id=_optional_str(row.get("cost_code_id")),
        total_price=parse_amount(row.get("total_price"), field="total_price", row_id=invoice),
    )


def invoice_items_from_invoice_rows(rows: list[Mapping[str, Any]]) -> list[InvoiceLineItem]:
    """Flatten invoices with an embedded ``invoice_items`` list into invoice lines."""
    items: list[InvoiceLineItem] = []
    for invoice in rows:
        invoice_id = _str(invoice.get("id"))
        for item in invoice.get("invoice_items") or []:
            items.append(invoice_item_from_row(item, invoice_id=invoice_id))
    return items
