"""
Exact conversions between ledger minor units and decimal display amounts.

Amounts stay integers until the last formatting step; nothing here goes
through ``float``.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from fractions import Fraction

from fundchain.shared.exceptions import ValidationError

DEFAULT_DECIMALS = 18

# uint256 has at most 78 decimal digits; leave room for the fractional part.
_PRECISION = 120


def to_minor_units(amount: str | int | Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """Parse a decimal amount ("1.5") into integer minor units.

    Raises:
        ValidationError: On non-numeric, negative, non-finite input or more
            fractional digits than the ledger can represent.
    """
    if isinstance(amount, bool) or isinstance(amount, float):
        raise ValidationError(
            "Amounts must be given as text, int or Decimal",
            details={"amount": repr(amount)},
        )

    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValidationError(
            f"Invalid amount: {amount!r}",
            details={"amount": str(amount)},
        ) from e

    if not value.is_finite():
        raise ValidationError("Amount must be finite", details={"amount": str(amount)})
    if value < 0:
        raise ValidationError("Amount must not be negative", details={"amount": str(amount)})

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                f"Amount has more than {decimals} decimal places",
                details={"amount": str(amount)},
            )
        return int(scaled)


def format_amount(minor_units: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Format minor units as a decimal string ("10.0", "0.25")."""
    sign = "-" if minor_units < 0 else ""
    whole, frac = divmod(abs(minor_units), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    frac_text = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{frac_text}"


def format_percent(value: Fraction, places: int = 2) -> str:
    """Render a percentage with a fixed number of places, rounding half up."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        exact = Decimal(value.numerator) / Decimal(value.denominator)
        return str(exact.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def short_address(address: str) -> str:
    """``0x1234...abcd`` form used in listings."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
