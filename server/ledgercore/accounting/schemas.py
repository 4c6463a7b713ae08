from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


JournalDirection = Literal["DEBIT", "CREDIT"]


class JournalLineResponse(BaseModel):
    id: int
    line_number: int
    account_id: int
    debit: Decimal
    credit: Decimal
    description: Optional[str] = None
    currency: str
    exchange_rate: Decimal
    subledger_type: Optional[str] = None
    subledger_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def direction(self) -> JournalDirection:
        return "DEBIT" if self.debit > 0 else "CREDIT"


class JournalEntryResponse(BaseModel):
    id: int
    company_id: int
    journal_number: str
    journal_date: date
    financial_year: str
    period_month: int
    entry_type: str
    source_type: str
    source_id: Optional[str] = None
    source_number: Optional[str] = None
    description: Optional[str] = None
    narration: Optional[str] = None
    status: str
    posted_at: datetime
    posted_by: Optional[str] = None
    total_debit: Decimal
    total_credit: Decimal
    reversal_of_id: Optional[int] = None
    reversed_by_id: Optional[int] = None
    lines: list[JournalLineResponse]

    model_config = ConfigDict(from_attributes=True)


class JournalReversalCreate(BaseModel):
    reversed_by: str = Field(..., min_length=1, max_length=64)
    reason: Optional[str] = Field(None, max_length=200)
