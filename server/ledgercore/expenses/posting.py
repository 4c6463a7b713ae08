"""Journal posting for reimbursed expense claims.

Without GST::

    Dr  Expense account                      total
        Cr  Employee reimbursement payable   total

With GST (intra-state)::

    Dr  Expense account                      base
    Dr  CGST input (1141)                    cgst
    Dr  SGST input (1142)                    sgst
        Cr  Employee reimbursement payable   total

Inter-state claims debit IGST input (1143) instead of CGST/SGST.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ledgercore.accounting.chart import AccountResolver
from ledgercore.accounting.posting import JournalLineInput, PostingContext, SourceEvent
from ledgercore.accounting.results import PostingResult
from ledgercore.accounting.service import has_posting, post_event
from ledgercore.accounting.tax import GstSplit, SupplyType, split_gst
from ledgercore.clock import Clock
from ledgercore.utils import ZERO, quantize_money

SOURCE_EXPENSE_CLAIM = "expense_claim"
RULE_EXPENSE_REIMBURSEMENT = "EXPENSE_REIMBURSEMENT"

GENERAL_EXPENSES = "5100"
CGST_INPUT = "1141"
SGST_INPUT = "1142"
IGST_INPUT = "1143"
EMPLOYEE_REIMBURSEMENT_PAYABLE = "2102"


@dataclass(frozen=True)
class ExpenseClaim:
    id: str
    company_id: int
    claim_number: str
    title: str
    amount: Decimal
    expense_date: date
    reimbursed_on: date
    employee_id: str
    employee_name: Optional[str] = None
    expense_account_code: Optional[str] = None
    category_name: Optional[str] = None
    is_gst_applicable: bool = False
    supply_type: str = SupplyType.INTRA_STATE.value
    gst_rate: Decimal = ZERO
    base_amount: Optional[Decimal] = None
    itc_eligible: bool = False
    vendor_name: Optional[str] = None
    invoice_number: Optional[str] = None

    @property
    def gst(self) -> GstSplit:
        if not self.is_gst_applicable:
            return GstSplit(base_amount=quantize_money(self.amount))
        if self.base_amount is not None:
            return split_gst(self.base_amount, self.gst_rate, self.supply_type, includes_tax=False)
        return split_gst(self.amount, self.gst_rate, self.supply_type, includes_tax=True)


def reimbursement_idempotency_key(claim_id: object) -> str:
    return f"{RULE_EXPENSE_REIMBURSEMENT}_{claim_id}"


def reimbursement_lines(claim: ExpenseClaim):
    def build(context: PostingContext) -> Iterable[JournalLineInput]:
        gst = claim.gst
        document = claim.invoice_number or claim.claim_number
        lines = [
            JournalLineInput(
                account_code=claim.expense_account_code or GENERAL_EXPENSES,
                debit=gst.base_amount,
                description=f"Expense: {claim.title}",
            )
        ]
        if gst.cgst_amount > 0:
            lines.append(
                JournalLineInput(
                    account_code=CGST_INPUT,
                    debit=gst.cgst_amount,
                    description=f"CGST Input @ {gst.cgst_rate}% on {document}",
                )
            )
        if gst.sgst_amount > 0:
            lines.append(
                JournalLineInput(
                    account_code=SGST_INPUT,
                    debit=gst.sgst_amount,
                    description=f"SGST Input @ {gst.sgst_rate}% on {document}",
                )
            )
        if gst.igst_amount > 0:
            lines.append(
                JournalLineInput(
                    account_code=IGST_INPUT,
                    debit=gst.igst_amount,
                    description=f"IGST Input @ {gst.igst_rate}% on {document}",
                )
            )
        lines.append(
            JournalLineInput(
                account_code=EMPLOYEE_REIMBURSEMENT_PAYABLE,
                credit=quantize_money(claim.amount),
                description=f"Payable to {claim.employee_name or 'employee'} for {claim.title}",
                subledger_type="employee",
                subledger_id=claim.employee_id,
            )
        )
        return lines

    return build


def reimbursement_narration(claim: ExpenseClaim) -> str:
    parts = [
        f"Being expense claim reimbursement for {claim.title}.",
        f"Claim No: {claim.claim_number}.",
        f"Category: {claim.category_name or 'General'}.",
        f"Expense Date: {claim.expense_date:%d-%b-%Y}.",
    ]
    if claim.vendor_name:
        parts.append(f"Vendor: {claim.vendor_name}.")
    if claim.invoice_number:
        parts.append(f"Invoice: {claim.invoice_number}.")
    gst = claim.gst
    if gst.total_gst > 0:
        itc = " (ITC Eligible)" if claim.itc_eligible else ""
        parts.append(f"GST Amount: ₹{gst.total_gst:,.2f}{itc}.")
    parts.append(f"Total Amount: ₹{quantize_money(claim.amount):,.2f}.")
    return " ".join(parts)


def post_expense_reimbursement(
    db: Session,
    claim: ExpenseClaim,
    *,
    posted_by: str | None = None,
    accounts: AccountResolver | None = None,
    clock: Clock | None = None,
) -> PostingResult:
    event = SourceEvent(
        source_type=SOURCE_EXPENSE_CLAIM,
        source_id=claim.id,
        company_id=claim.company_id,
        entry_date=claim.reimbursed_on,
        line_builder=reimbursement_lines(claim),
        source_number=claim.claim_number,
        description=f"Expense claim {claim.claim_number}: {claim.title}"[:255],
        narration=reimbursement_narration(claim),
        rule_code=RULE_EXPENSE_REIMBURSEMENT,
        posted_by=posted_by,
        idempotency_key=reimbursement_idempotency_key(claim.id),
    )
    return post_event(db, event, accounts=accounts, clock=clock)


@dataclass(frozen=True)
class ExpensePostingSummary:
    month: int
    year: int
    total_claims: int
    claims_with_journal_entry: int
    total_expense_amount: Decimal
    total_gst_amount: Decimal
    total_reimbursement_amount: Decimal


def expense_posting_summary(
    db: Session,
    claims: Iterable[ExpenseClaim],
    *,
    company_id: int,
    month: int,
    year: int,
) -> ExpensePostingSummary:
    in_month = [
        claim
        for claim in claims
        if claim.company_id == company_id
        and claim.reimbursed_on.month == month
        and claim.reimbursed_on.year == year
    ]
    posted = sum(1 for claim in in_month if has_posting(db, SOURCE_EXPENSE_CLAIM, claim.id))
    splits = [claim.gst for claim in in_month]
    return ExpensePostingSummary(
        month=month,
        year=year,
        total_claims=len(in_month),
        claims_with_journal_entry=posted,
        total_expense_amount=sum((split.base_amount for split in splits), ZERO),
        total_gst_amount=sum((split.total_gst for split in splits), ZERO),
        total_reimbursement_amount=sum((quantize_money(claim.amount) for claim in in_month), ZERO),
    )
