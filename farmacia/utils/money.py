"""
Money and tax helpers.

All currency amounts are Decimal. Each total field (subtotal, tax, total) is
rounded exactly once to 2 decimals with ROUND_HALF_UP (half away from zero),
starting from the full-precision subtotal.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Tuple, Union

CENT = Decimal('0.01')
DEFAULT_TAX_RATE = Decimal('0.18')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal (floats go through str to keep 2.5 as 2.5)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f'Monto inválido: {value!r}')


def round2(value: Number) -> Decimal:
    """Round to 2 decimals, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_tax(subtotal: Number, rate: Number = DEFAULT_TAX_RATE) -> Decimal:
    """
    Tax for a subtotal: round2(subtotal * rate).

    The subtotal is taken at full precision; pass the unrounded sum of line
    amounts, not an already rounded figure.
    """
    subtotal = to_decimal(subtotal)
    rate = to_decimal(rate)
    if subtotal < 0:
        raise ValueError('El subtotal no puede ser negativo')
    if rate < 0:
        raise ValueError('La tasa de impuesto no puede ser negativa')
    return round2(subtotal * rate)


def compute_total(subtotal: Number, tax: Number) -> Decimal:
    """Total = round2(subtotal) + round2(tax)."""
    return round2(subtotal) + round2(tax)


def compute_totals(line_amounts: Iterable[Number], rate: Number = DEFAULT_TAX_RATE) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Accumulate line amounts at full precision and return (subtotal, tax, total).

    Used by the cart and the sale engine so both produce identical figures.
    """
    raw_subtotal = sum((to_decimal(amount) for amount in line_amounts), Decimal('0'))
    tax = compute_tax(raw_subtotal, rate)
    return round2(raw_subtotal), tax, compute_total(raw_subtotal, tax)


def format_money(value: Number, prefix: str = 'S/') -> str:
    """Format a currency amount: format_money(8.85) -> 'S/ 8.85'."""
    amount = round2(value)
    if prefix:
        return f'{prefix} {amount:.2f}'
    return f'{amount:.2f}'


def format_rate(rate: Number) -> str:
    """Format a tax rate as a percentage: Decimal('0.18') -> '18%'."""
    percent = (to_decimal(rate) * 100).normalize()
    # normalize() turns 100 into 1E+2
    if percent == percent.to_integral_value():
        return f'{int(percent)}%'
    return f'{percent:f}%'
