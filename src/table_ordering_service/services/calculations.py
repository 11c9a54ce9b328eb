"""Tip, tax and total calculations.

All amounts are Decimal and rounded half-up to cents at every stage, so the
taxed total is computed from the already-rounded taxable amount.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from table_ordering_service.services.errors import InvalidAmountError

TAX_RATE = Decimal("0.03")
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class OrderCalculation:
    """Breakdown of an order's amounts.

    Attributes:
        subtotal: Sum of line totals
        tip_amount: Gratuity
        tax_amount: Tax on subtotal plus tip
        total: Subtotal plus tip plus tax
    """

    subtotal: Decimal
    tip_amount: Decimal
    tax_amount: Decimal
    total: Decimal


def parse_amount(value: Decimal | int | float | str) -> Decimal:
    """Parse a non-negative finite number without rounding it.

    Raises:
        InvalidAmountError: If the value is not a number or is negative
    """
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidAmountError(f"Not a valid amount: {value!r}") from e

    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError(f"Amount must be a non-negative number: {value!r}")

    return amount


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Round a value half-up to two decimal places.

    Raises:
        InvalidAmountError: If the value is not a number or is negative
    """
    return parse_amount(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_tip_amount(
    subtotal: Decimal | int | float | str, tip_percentage: Decimal | int | float | str = 0
) -> Decimal:
    """Compute subtotal x percentage / 100, rounded to cents once at the end.

    Raises:
        InvalidAmountError: If either value is not a non-negative number
    """
    percentage = parse_amount(tip_percentage if tip_percentage is not None else 0)
    return to_money(parse_amount(subtotal) * percentage / 100)


def calculate_order_total(
    subtotal: Decimal | int | float | str, tip_percentage: Decimal | int | float | str = 0
) -> OrderCalculation:
    """Compute the tax-inclusive breakdown for a subtotal and tip percentage."""
    tip_amount = calculate_tip_amount(subtotal, tip_percentage)
    return apply_tax(subtotal, tip_amount)


def apply_tax(
    subtotal: Decimal | int | float | str, tip_amount: Decimal | int | float | str
) -> OrderCalculation:
    """Apply the fixed tax rate to subtotal plus an absolute tip amount."""
    base = to_money(subtotal)
    tip = to_money(tip_amount)
    taxable = to_money(base + tip)
    total = to_money(taxable * (1 + TAX_RATE))
    return OrderCalculation(
        subtotal=base,
        tip_amount=tip,
        tax_amount=total - taxable,
        total=total,
    )


def format_currency(amount: Decimal | int | float | str) -> str:
    """Format an amount as dollars, e.g. $12.50."""
    return f"${to_money(amount)}"
