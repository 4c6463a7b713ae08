import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ledgercore.clock import Clock, default_clock
from ledgercore.intercompany.service import MIRROR_MIRRORED, balance_of, get_balances_for_company
from ledgercore.models import Company, IntercompanyTransaction
from ledgercore.utils import BALANCE_TOLERANCE, ZERO

logger = logging.getLogger(__name__)

SYSTEM_RECONCILER = "system"


class ReconcileStatus(str, Enum):
    RECONCILED = "reconciled"
    NOT_FOUND = "not_found"
    SAME_TRANSACTION = "same_transaction"
    ALREADY_RECONCILED = "already_reconciled"
    AMOUNT_MISMATCH = "amount_mismatch"


@dataclass
class ReconcileResult:
    status: ReconcileStatus
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ReconcileStatus.RECONCILED


def get_unreconciled(
    db: Session,
    company_id: int | None = None,
    *,
    as_of: date | None = None,
) -> list[IntercompanyTransaction]:
    """Unreconciled legs in id order; a company filter keeps legs where it is either side."""
    query = db.query(IntercompanyTransaction).filter(IntercompanyTransaction.is_reconciled.is_(False))
    if company_id is not None:
        query = query.filter(
            or_(
                IntercompanyTransaction.company_id == company_id,
                IntercompanyTransaction.counterparty_company_id == company_id,
            )
        )
    if as_of is not None:
        query = query.filter(IntercompanyTransaction.transaction_date <= as_of)
    return query.order_by(IntercompanyTransaction.id.asc()).all()


MatchKey = tuple[int, int, Decimal, date, Optional[str]]


def _match_key(txn: IntercompanyTransaction) -> MatchKey:
    return (
        txn.company_id,
        txn.counterparty_company_id,
        Decimal(txn.amount),
        txn.transaction_date,
        txn.source_document_number,
    )


def _counterpart_key(txn: IntercompanyTransaction) -> MatchKey:
    # The counterpart sits in the other company's books, pointing back at us.
    company_id, counterparty_id, *rest = _match_key(txn)
    return (counterparty_id, company_id, *rest)


def _mark_reconciled(
    txn: IntercompanyTransaction,
    counterpart: IntercompanyTransaction,
    *,
    reconciled_by: str,
    clock: Clock,
    relink: bool,
) -> None:
    reconciled_at = clock.now()
    for leg, other in ((txn, counterpart), (counterpart, txn)):
        leg.is_reconciled = True
        leg.reconciled_by = reconciled_by
        leg.reconciled_at = reconciled_at
        if relink or leg.counterparty_transaction_id is None:
            leg.counterparty_transaction_id = other.id
        leg.mirror_status = MIRROR_MIRRORED


def auto_reconcile(db: Session, company_id: int | None = None, *, clock: Clock | None = None) -> int:
    """Pair unreconciled legs on swapped companies, amount, date and document number.

    The first candidate in id order wins; a wrong pairing is left for manual review.
    Returns the number of transactions marked reconciled.
    """
    clock = clock or default_clock
    transactions = get_unreconciled(db, company_id)
    by_key: dict[MatchKey, list[IntercompanyTransaction]] = defaultdict(list)
    for txn in transactions:
        by_key[_match_key(txn)].append(txn)

    reconciled = 0
    for txn in transactions:
        if txn.is_reconciled:
            continue
        candidates = by_key.get(_counterpart_key(txn), [])
        match = next(
            (candidate for candidate in candidates if candidate.id != txn.id and not candidate.is_reconciled),
            None,
        )
        if match is None:
            continue
        _mark_reconciled(txn, match, reconciled_by=SYSTEM_RECONCILER, clock=clock, relink=False)
        reconciled += 2
    db.flush()
    logger.info(
        "Auto-reconciled %s intercompany transactions (company=%s, candidates=%s)",
        reconciled,
        company_id,
        len(transactions),
    )
    return reconciled


def manual_reconcile(
    db: Session,
    transaction_id: int,
    counterpart_transaction_id: int,
    reconciled_by: str,
    *,
    clock: Clock | None = None,
) -> ReconcileResult:
    if transaction_id == counterpart_transaction_id:
        return ReconcileResult(ReconcileStatus.SAME_TRANSACTION, "A transaction cannot be reconciled with itself.")

    txn = db.get(IntercompanyTransaction, transaction_id)
    counterpart = db.get(IntercompanyTransaction, counterpart_transaction_id)
    if txn is None or counterpart is None:
        return ReconcileResult(ReconcileStatus.NOT_FOUND, "One or both transactions not found.")
    if txn.is_reconciled or counterpart.is_reconciled:
        return ReconcileResult(ReconcileStatus.ALREADY_RECONCILED, "One or both transactions are already reconciled.")
    if Decimal(txn.amount) != Decimal(counterpart.amount):
        logger.warning(
            "Rejected manual reconciliation of %s (%s) with %s (%s): amounts differ",
            txn.id,
            txn.amount,
            counterpart.id,
            counterpart.amount,
        )
        return ReconcileResult(ReconcileStatus.AMOUNT_MISMATCH, "Transaction amounts do not match.")

    _mark_reconciled(txn, counterpart, reconciled_by=reconciled_by, clock=clock or default_clock, relink=True)
    db.flush()
    logger.info("Manually reconciled %s with %s by %s", txn.id, counterpart.id, reconciled_by)
    return ReconcileResult(ReconcileStatus.RECONCILED)


@dataclass
class BalanceSummary:
    counterparty_id: int
    counterparty_name: str
    our_balance: Decimal
    their_balance: Decimal
    difference: Decimal
    status: str
    transaction_count: int
    last_transaction_date: Optional[date]


@dataclass
class ReconciliationReport:
    company_id: int
    company_name: str
    as_of_date: date
    balances: list[BalanceSummary] = field(default_factory=list)
    total_receivables: Decimal = ZERO
    total_payables: Decimal = ZERO
    net_position: Decimal = ZERO
    unreconciled_count: int = 0
    unreconciled_amount: Decimal = ZERO


def build_reconciliation_report(db: Session, company_id: int, as_of: date) -> Optional[ReconciliationReport]:
    company = db.get(Company, company_id)
    if company is None:
        return None

    report = ReconciliationReport(company_id=company.id, company_name=company.name or "", as_of_date=as_of)
    for balance in get_balances_for_company(db, company_id):
        counterparty = db.get(Company, balance.to_company_id)
        our_balance = Decimal(balance.balance_amount)
        their_balance = -balance_of(db, balance.to_company_id, company_id)
        difference = our_balance - their_balance
        report.balances.append(
            BalanceSummary(
                counterparty_id=balance.to_company_id,
                counterparty_name=counterparty.name if counterparty else "Unknown",
                our_balance=our_balance,
                their_balance=their_balance,
                difference=difference,
                status="Matched" if abs(difference) < BALANCE_TOLERANCE else "Unmatched",
                transaction_count=balance.transaction_count,
                last_transaction_date=balance.last_transaction_date,
            )
        )
        if our_balance > 0:
            report.total_receivables += our_balance
        else:
            report.total_payables += abs(our_balance)

    unreconciled = [
        txn for txn in get_unreconciled(db, company_id, as_of=as_of) if txn.company_id == company_id
    ]
    report.net_position = report.total_receivables - report.total_payables
    report.unreconciled_count = len(unreconciled)
    report.unreconciled_amount = sum((Decimal(txn.amount) for txn in unreconciled), ZERO)
    return report
