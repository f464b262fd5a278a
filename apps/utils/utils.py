from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Coerce int/float/str/Decimal to a 2-place Decimal (half-up).
    Floats go through str() so 0.1 stays 0.10 and not 0.1000000000000000055.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
