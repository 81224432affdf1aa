# fleet/utils/money.py

from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(amount) -> Decimal:
    """
    Normalise any numeric input (Decimal, int, float, str) to a 2dp Decimal.
    Floats go through str() first so 0.1 stays 0.10.
    """
    if amount is None:
        return ZERO
    return Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
