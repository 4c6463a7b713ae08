from dataclasses import dataclass
from datetime import date

FISCAL_YEAR_START_MONTH = 4


@dataclass(frozen=True)
class FinancialPeriod:
    financial_year: str
    period_month: int


def financial_year(value: date) -> str:
    """Indian financial year label, e.g. 2024-04-01 and 2025-03-31 are both "2024-25"."""
    start = value.year if value.month >= FISCAL_YEAR_START_MONTH else value.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def period_month(value: date) -> int:
    # April = 1 ... March = 12
    return value.month - 3 if value.month >= FISCAL_YEAR_START_MONTH else value.month + 9


def resolve_period(value: date) -> FinancialPeriod:
    return FinancialPeriod(financial_year=financial_year(value), period_month=period_month(value))
