from decimal import Context, Decimal, Inexact, ROUND_DOWN
from typing import Optional


# Range of a 96-bit fixed-scale decimal.
MAX_AMOUNT = Decimal("79228162514264337593543950335")
MIN_AMOUNT = Decimal("-79228162514264337593543950335")

ZERO = Decimal("0")

# Wide enough that add/sub of two in-range amounts is always exact.
_EXACT_CONTEXT = Context(prec=80, traps=[Inexact])
_TRUNCATE_CONTEXT = Context(prec=80, rounding=ROUND_DOWN)


def _in_range(value: Decimal) -> bool:
    return MIN_AMOUNT <= value <= MAX_AMOUNT


def checked_add(left: Decimal, right: Decimal) -> Optional[Decimal]:
    """Add two amounts. Returns None if the result leaves the supported range."""
    result = _EXACT_CONTEXT.add(left, right)
    if not _in_range(result):
        return None
    return result


def checked_sub(left: Decimal, right: Decimal) -> Optional[Decimal]:
    """Subtract two amounts. Returns None if the result leaves the supported range."""
    result = _EXACT_CONTEXT.subtract(left, right)
    if not _in_range(result):
        return None
    return result


def exact_add(left: Decimal, right: Decimal) -> Decimal:
    """Unbounded exact sum, for derived figures such as totals."""
    return _EXACT_CONTEXT.add(left, right)


def truncate(value: Decimal, scale: int) -> Decimal:
    """Drop fractional digits beyond `scale`, rounding toward zero."""
    exponent = value.as_tuple().exponent
    if isinstance(exponent, int) and -exponent <= scale:
        return value
    return value.quantize(Decimal(1).scaleb(-scale), context=_TRUNCATE_CONTEXT)


def format_amount(value: Decimal) -> str:
    # Positional notation only, "1E+1" is not a valid amount literal downstream.
    return format(value, "f")
