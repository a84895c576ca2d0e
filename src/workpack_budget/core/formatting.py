"""Display formatting for currency amounts and percentages."""

from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


def format_currency(amount: Decimal | float | int, symbol: str = "$") -> str:
    """Render an amount as ``$12,345.67`` (negatives as ``-$50.00``)."""
    value = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    if value.is_zero():
        value = abs(value)
    if value < 0:
        return f"-{symbol}{-value:,.2f}"
    return f"{symbol}{value:,.2f}"


def format_signed_currency(amount: Decimal | float | int, symbol: str = "$") -> str:
    """Like format_currency but with a leading ``+`` for non-negative amounts."""
    rendered = format_currency(amount, symbol)
    return rendered if rendered.startswith("-") else f"+{rendered}"


def format_percentage(value: Decimal | float | int) -> str:
    """Render a percentage with one decimal and an explicit sign, e.g. ``-20.0%``."""
    rounded = Decimal(str(value)).quantize(_TENTH, rounding=ROUND_HALF_UP)
    if rounded.is_zero():
        rounded = abs(rounded)
    sign = "+" if rounded >= 0 else ""
    return f"{sign}{rounded}%"


def variance_direction(variance: Decimal) -> str:
    """``over`` budget when positive, ``under`` when negative, else ``on``."""
    if variance > 0:
        return "over"
    if variance < 0:
        return "under"
    return "on"
