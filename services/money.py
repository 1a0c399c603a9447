# services/money.py
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
     """Quantize to two decimal places; floats go through str to avoid binary noise."""
     if value is None:
          return ZERO
     if isinstance(value, float):
          value = str(value)
     return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
