"""Shared test fixtures for workpack-budget tests."""

import sys
from pathlib import Path

# Ensure the src/ layout is importable without installing the package.
_SRC_PATH = Path(__file__).parent.parent / "src"
if str(_SRC_PATH) not in sys.path:
    sys.path.insert(0, str(_SRC_PATH))

from decimal import Decimal

import pytest

from workpack_budget.core.models import ActualExpense, BudgetLineItem, OrganizationContext
from workpack_budget.settings import Settings


def make_line_item(
    item_id: str,
    cost_code_id: str | None,
    quantity: str | None,
    price: str | None,
    *,
    number: str = "",
    name: str = "",
    category: str | None = None,
    line_item_name: str = "Item",
) -> BudgetLineItem:
    """Build a BudgetLineItem with string amounts converted to Decimal."""
    return BudgetLineItem(
        id=item_id,
        cost_code_id=cost_code_id,
        cost_code_name=name,
        cost_code_number=number,
        cost_code_category=category,
        line_item_name=line_item_name,
        quantity=Decimal(quantity) if quantity is not None else None,
        price=Decimal(price) if price is not None else None,
    )


def make_expense(
    expense_id: str,
    cost_code_id: str | None,
    amount: str | None,
    *,
    number: str = "",
    name: str = "",
    category: str | None = None,
    vendor: str | None = None,
) -> ActualExpense:
    return ActualExpense(
        id=expense_id,
        cost_code_id=cost_code_id,
        cost_code_name=name,
        cost_code_number=number,
        cost_code_category=category,
        description=f"Expense {expense_id}",
        amount=Decimal(amount) if amount is not None else None,
        category="materials",
        vendor=vendor,
    )


@pytest.fixture
def settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        backend_url="http://backend-test:54321",
        backend_api_key="test-anon-key",
        backend_timeout_seconds=2.0,
        data_source="rest",
        negative_amount_policy="clamp",
    )


@pytest.fixture
def org_context() -> OrganizationContext:
    """Provide a consistent organization context."""
    return OrganizationContext(organization_id="org-001", user_id="user-001")


@pytest.fixture
def work_pack_id() -> str:
    return "wp-001"


@pytest.fixture
def sample_line_items() -> list[BudgetLineItem]:
    """Two cost codes: 01 budgets 200, 02 budgets 50."""
    return [
        make_line_item("i1", "cc-01", "10", "20", number="01", name="Concrete", category="structure"),
        make_line_item("i2", "cc-02", "5", "10", number="02", name="Electrical", category="services"),
    ]


@pytest.fixture
def sample_expenses() -> list[ActualExpense]:
    """180 against 01 and 20 without a cost code."""
    return [
        make_expense("e1", "cc-01", "180", number="01", name="Concrete", category="structure"),
        make_expense("e2", None, "20"),
    ]
