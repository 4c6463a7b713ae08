from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IntercompanyInvoiceCreate(BaseModel):
    invoice_id: str
    invoicing_company_id: int
    customer_company_id: int
    amount: Decimal = Field(..., gt=Decimal("0"))
    currency: str = Field("INR", min_length=3, max_length=3)
    invoice_date: date
    invoice_number: str

    @model_validator(mode="after")
    def validate_companies(self):
        if self.invoicing_company_id == self.customer_company_id:
            raise ValueError("Invoicing and customer companies must be different.")
        return self


class IntercompanyPaymentCreate(BaseModel):
    payment_id: str
    paying_company_id: int
    receiving_company_id: int
    amount: Decimal = Field(..., gt=Decimal("0"))
    currency: str = Field("INR", min_length=3, max_length=3)
    payment_date: date
    reference: Optional[str] = None

    @model_validator(mode="after")
    def validate_companies(self):
        if self.paying_company_id == self.receiving_company_id:
            raise ValueError("Paying and receiving companies must be different.")
        return self


class IntercompanyTransactionResponse(BaseModel):
    id: int
    company_id: int
    counterparty_company_id: int
    transaction_date: date
    financial_year: str
    transaction_type: str
    transaction_direction: str
    source_document_type: str
    source_document_id: str
    source_document_number: Optional[str] = None
    amount: Decimal
    currency: str
    amount_in_inr: Optional[Decimal] = None
    counterparty_transaction_id: Optional[int] = None
    mirror_status: str
    is_reconciled: bool
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MirrorResponse(BaseModel):
    status: Literal["mirrored", "pending"]
    primary: IntercompanyTransactionResponse
    counterpart: Optional[IntercompanyTransactionResponse] = None
    message: Optional[str] = None


class IntercompanyBalanceResponse(BaseModel):
    from_company_id: int
    to_company_id: int
    balance_amount: Decimal
    last_transaction_date: Optional[date] = None
    transaction_count: int

    model_config = ConfigDict(from_attributes=True)


class ManualReconcileRequest(BaseModel):
    transaction_id: int
    counterpart_transaction_id: int
    reconciled_by: str = Field(..., min_length=1, max_length=64)


class AutoReconcileResponse(BaseModel):
    reconciled_count: int


class BalanceSummaryResponse(BaseModel):
    counterparty_id: int
    counterparty_name: str
    our_balance: Decimal
    their_balance: Decimal
    difference: Decimal
    status: str
    transaction_count: int
    last_transaction_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class ReconciliationReportResponse(BaseModel):
    company_id: int
    company_name: str
    as_of_date: date
    balances: list[BalanceSummaryResponse]
    total_receivables: Decimal
    total_payables: Decimal
    net_position: Decimal
    unreconciled_count: int
    unreconciled_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class CompanyRelationshipCreate(BaseModel):
    parent_company_id: int
    child_company_id: int
    relationship_type: str = "subsidiary"
    ownership_percentage: Decimal = Field(..., gt=Decimal("0"), le=Decimal("100"))
    consolidation_method: str = "full"
    effective_from: Optional[date] = None


class CompanyRelationshipResponse(BaseModel):
    id: int
    parent_company_id: int
    child_company_id: int
    relationship_type: str
    ownership_percentage: Decimal
    consolidation_method: str
    effective_from: date
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
