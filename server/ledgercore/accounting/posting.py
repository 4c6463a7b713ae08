from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence

from ledgercore.utils import LOCAL_CURRENCY, ZERO, is_balanced

ENTRY_TYPE_AUTO_POST = "auto_post"
ENTRY_TYPE_REVERSAL = "reversal"

STATUS_POSTED = "posted"
STATUS_REVERSED = "reversed"


@dataclass(frozen=True)
class JournalLineInput:
    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    subledger_type: str | None = None
    subledger_id: str | None = None
    currency: str = LOCAL_CURRENCY
    exchange_rate: Decimal = Decimal("1")

    @property
    def is_empty(self) -> bool:
        return self.debit == 0 and self.credit == 0


@dataclass(frozen=True)
class PostingContext:
    """What a line builder gets to see; everything else must be pre-fetched by the caller."""

    company_id: int
    entry_date: date
    financial_year: str
    period_month: int
    source_type: str
    source_id: str
    source_number: str | None = None


LineBuilder = Callable[[PostingContext], Iterable[JournalLineInput]]


@dataclass(frozen=True)
class SourceEvent:
    source_type: str
    source_id: str
    company_id: int
    entry_date: date
    line_builder: LineBuilder
    source_number: Optional[str] = None
    description: Optional[str] = None
    narration: Optional[str] = None
    rule_code: Optional[str] = None
    posted_by: Optional[str] = None
    entry_type: str = ENTRY_TYPE_AUTO_POST
    idempotency_key: Optional[str] = None

    @property
    def key(self) -> str:
        return self.idempotency_key or make_idempotency_key(self.source_type, self.source_id)


class UnbalancedEntryError(ValueError):
    pass


class InvalidJournalLineError(ValueError):
    pass


def make_idempotency_key(source_type: str, source_id: object) -> str:
    return f"{source_type.upper()}_{source_id}"


def validate_line(line: JournalLineInput) -> None:
    if line.debit < 0 or line.credit < 0:
        raise InvalidJournalLineError(
            f"Journal line for account {line.account_code} has a negative amount: "
            f"debit={line.debit} credit={line.credit}"
        )
    if line.debit != 0 and line.credit != 0:
        raise InvalidJournalLineError(
            f"Journal line for account {line.account_code} must be either a debit or a credit, not both."
        )


def totals(lines: Sequence) -> tuple[Decimal, Decimal]:
    total_debits = sum((Decimal(line.debit) for line in lines), ZERO)
    total_credits = sum((Decimal(line.credit) for line in lines), ZERO)
    return total_debits, total_credits


def ensure_balanced(lines: List) -> None:
    total_debits, total_credits = totals(lines)
    if not is_balanced(total_debits, total_credits):
        raise UnbalancedEntryError(
            f"Journal entry is unbalanced: debits={total_debits} credits={total_credits}"
        )
