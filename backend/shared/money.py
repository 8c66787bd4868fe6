"""
Money arithmetic helpers.

Amounts are Decimal throughout. Computed charges (discounts, taxes, fees)
are rounded half-up to the currency's minor unit; amounts submitted by
callers for settlement are applied exactly as given.
"""

from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Minor units for currencies that do not use cents
_MINOR_UNIT_EXPONENTS = {
    "JPY": 0,
    "KRW": 0,
    "BHD": 3,
    "KWD": 3,
}


def minor_unit(currency: str = "USD") -> Decimal:
    """Smallest representable amount for a currency (e.g. 0.01 for USD)."""
    exponent = _MINOR_UNIT_EXPONENTS.get(currency.upper(), 2)
    return Decimal(1).scaleb(-exponent)


def quantize_money(amount: Decimal, currency: str = "USD") -> Decimal:
    return amount.quantize(minor_unit(currency), rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal, currency: str = "USD") -> Decimal:
    """`percent`% of `amount`, rounded to the currency minor unit."""
    return quantize_money(amount * percent / HUNDRED, currency)
