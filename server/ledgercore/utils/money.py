import os
from decimal import Decimal, ROUND_HALF_UP

LOCAL_CURRENCY = os.getenv("LOCAL_CURRENCY", "INR")

ZERO = Decimal("0.00")
# Debits and credits closer than this are treated as equal.
BALANCE_TOLERANCE = Decimal("0.01")


def quantize_money(value: Decimal | float | int | str | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def is_balanced(total_debit: Decimal, total_credit: Decimal) -> bool:
    return abs(total_debit - total_credit) < BALANCE_TOLERANCE
