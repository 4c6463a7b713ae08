import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import case, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledgercore.accounting.periods import financial_year
from ledgercore.clock import Clock, default_clock
from ledgercore.models import Company, CompanyRelationship, IntercompanyBalance, IntercompanyTransaction
from ledgercore.utils import LOCAL_CURRENCY, ZERO, quantize_money

logger = logging.getLogger(__name__)

TYPE_INVOICE = "invoice"
TYPE_PAYMENT = "payment"

DIRECTION_RECEIVABLE = "receivable"
DIRECTION_PAYABLE = "payable"

MIRROR_PENDING = "pending"
MIRROR_MIRRORED = "mirrored"


class MirrorStatus(str, Enum):
    MIRRORED = "mirrored"
    PENDING = "pending"


@dataclass
class MirrorResult:
    status: MirrorStatus
    primary: IntercompanyTransaction
    counterpart: Optional[IntercompanyTransaction] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class _Leg:
    company_id: int
    counterparty_company_id: int
    transaction_type: str
    direction: str
    source_document_type: str
    source_document_id: str
    source_document_number: Optional[str]
    amount: Decimal
    currency: str
    transaction_date: date
    description: str
    is_debit: bool


def update_balance(
    db: Session,
    from_company_id: int,
    to_company_id: int,
    txn_date: date,
    amount: Decimal,
    *,
    is_debit: bool,
) -> None:
    """Add ``amount`` (debit) or subtract it (credit) from the running from→to balance.

    The increment is a single UPDATE so concurrent postings for the same pair never lose updates.
    """
    delta = amount if is_debit else -amount
    increment = (
        update(IntercompanyBalance)
        .where(
            IntercompanyBalance.from_company_id == from_company_id,
            IntercompanyBalance.to_company_id == to_company_id,
        )
        .values(
            balance_amount=IntercompanyBalance.balance_amount + delta,
            transaction_count=IntercompanyBalance.transaction_count + 1,
            last_transaction_date=case(
                (
                    or_(
                        IntercompanyBalance.last_transaction_date.is_(None),
                        IntercompanyBalance.last_transaction_date < txn_date,
                    ),
                    txn_date,
                ),
                else_=IntercompanyBalance.last_transaction_date,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    if db.execute(increment).rowcount:
        return

    try:
        with db.begin_nested():
            db.add(
                IntercompanyBalance(
                    from_company_id=from_company_id,
                    to_company_id=to_company_id,
                    balance_amount=delta,
                    last_transaction_date=txn_date,
                    transaction_count=1,
                )
            )
            db.flush()
    except IntegrityError:
        # Another writer created the row first.
        db.execute(increment)


def get_balance(db: Session, from_company_id: int, to_company_id: int) -> Optional[IntercompanyBalance]:
    return (
        db.query(IntercompanyBalance)
        .populate_existing()
        .filter(
            IntercompanyBalance.from_company_id == from_company_id,
            IntercompanyBalance.to_company_id == to_company_id,
        )
        .first()
    )


def balance_of(db: Session, from_company_id: int, to_company_id: int) -> Decimal:
    balance = get_balance(db, from_company_id, to_company_id)
    return Decimal(balance.balance_amount) if balance else ZERO


def get_balances_for_company(db: Session, company_id: int) -> list[IntercompanyBalance]:
    return (
        db.query(IntercompanyBalance)
        .populate_existing()
        .filter(IntercompanyBalance.from_company_id == company_id)
        .order_by(IntercompanyBalance.to_company_id.asc())
        .all()
    )


def _find_leg(db: Session, company_id: int, source_document_type: str, source_document_id: str):
    return (
        db.query(IntercompanyTransaction)
        .filter(
            IntercompanyTransaction.company_id == company_id,
            IntercompanyTransaction.source_document_type == source_document_type,
            IntercompanyTransaction.source_document_id == source_document_id,
        )
        .first()
    )


def _record_leg(db: Session, leg: _Leg) -> IntercompanyTransaction:
    """Persist one leg with its balance movement and commit; an existing leg is returned untouched."""
    existing = _find_leg(db, leg.company_id, leg.source_document_type, leg.source_document_id)
    if existing:
        logger.info(
            "Intercompany %s leg for %s %s already recorded on company %s",
            leg.direction,
            leg.source_document_type,
            leg.source_document_id,
            leg.company_id,
        )
        return existing

    txn = IntercompanyTransaction(
        company_id=leg.company_id,
        counterparty_company_id=leg.counterparty_company_id,
        transaction_date=leg.transaction_date,
        financial_year=financial_year(leg.transaction_date),
        transaction_type=leg.transaction_type,
        transaction_direction=leg.direction,
        source_document_type=leg.source_document_type,
        source_document_id=leg.source_document_id,
        source_document_number=leg.source_document_number,
        amount=leg.amount,
        currency=leg.currency,
        amount_in_inr=leg.amount if leg.currency == LOCAL_CURRENCY else None,
        description=leg.description,
        mirror_status=MIRROR_PENDING,
    )
    try:
        db.add(txn)
        db.flush()
        update_balance(
            db,
            leg.company_id,
            leg.counterparty_company_id,
            leg.transaction_date,
            leg.amount,
            is_debit=leg.is_debit,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = _find_leg(db, leg.company_id, leg.source_document_type, leg.source_document_id)
        if winner is None:
            raise
        return winner
    return txn


def _link(db: Session, first: IntercompanyTransaction, second: IntercompanyTransaction) -> None:
    first.counterparty_transaction_id = second.id
    second.counterparty_transaction_id = first.id
    first.mirror_status = MIRROR_MIRRORED
    second.mirror_status = MIRROR_MIRRORED
    db.commit()


def _mirror(db: Session, first_leg: _Leg, second_leg: _Leg) -> MirrorResult:
    # Legs live in different companies' books; each commits on its own and the
    # reconciliation matcher picks up a leg whose counterpart never landed.
    first = _record_leg(db, first_leg)
    try:
        second = _record_leg(db, second_leg)
        _link(db, first, second)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Counterpart leg for %s %s on company %s failed; transaction %s left pending",
            second_leg.source_document_type,
            second_leg.source_document_id,
            second_leg.company_id,
            first.id,
        )
        return MirrorResult(
            MirrorStatus.PENDING,
            primary=first,
            message="Counterpart leg could not be recorded; left for reconciliation.",
        )

    logger.info(
        "Mirrored intercompany %s %s: transaction %s (company %s) <-> %s (company %s)",
        first_leg.transaction_type,
        first_leg.source_document_number,
        first.id,
        first.company_id,
        second.id,
        second.company_id,
    )
    return MirrorResult(MirrorStatus.MIRRORED, primary=first, counterpart=second)


def _validate_pair(company_id: int, counterparty_company_id: int, amount) -> Decimal:
    if company_id == counterparty_company_id:
        raise ValueError("Intercompany transactions require two different companies.")
    amount = quantize_money(amount)
    if amount is None or amount <= 0:
        raise ValueError("Amount must be greater than zero.")
    return amount


def record_intercompany_invoice(
    db: Session,
    *,
    invoice_id: object,
    invoicing_company_id: int,
    customer_company_id: int,
    amount: Decimal,
    currency: str,
    invoice_date: date,
    invoice_number: str,
) -> MirrorResult:
    amount = _validate_pair(invoicing_company_id, customer_company_id, amount)
    common = dict(
        transaction_type=TYPE_INVOICE,
        source_document_type=TYPE_INVOICE,
        source_document_id=str(invoice_id),
        source_document_number=invoice_number,
        amount=amount,
        currency=currency,
        transaction_date=invoice_date,
        description=f"Intercompany invoice {invoice_number}",
    )
    receivable = _Leg(
        company_id=invoicing_company_id,
        counterparty_company_id=customer_company_id,
        direction=DIRECTION_RECEIVABLE,
        is_debit=True,
        **common,
    )
    payable = _Leg(
        company_id=customer_company_id,
        counterparty_company_id=invoicing_company_id,
        direction=DIRECTION_PAYABLE,
        is_debit=False,
        **common,
    )
    return _mirror(db, receivable, payable)


def record_intercompany_payment(
    db: Session,
    *,
    payment_id: object,
    paying_company_id: int,
    receiving_company_id: int,
    amount: Decimal,
    currency: str,
    payment_date: date,
    reference: str | None = None,
) -> MirrorResult:
    amount = _validate_pair(paying_company_id, receiving_company_id, amount)
    reference = reference or str(payment_id)[:8]
    common = dict(
        transaction_type=TYPE_PAYMENT,
        source_document_type=TYPE_PAYMENT,
        source_document_id=str(payment_id),
        source_document_number=reference,
        amount=amount,
        currency=currency,
        transaction_date=payment_date,
    )
    # Debit on the payer reduces its payable; credit on the receiver reduces its receivable.
    payment_out = _Leg(
        company_id=paying_company_id,
        counterparty_company_id=receiving_company_id,
        direction=DIRECTION_PAYABLE,
        is_debit=True,
        description=f"Intercompany payment {reference}",
        **common,
    )
    receipt = _Leg(
        company_id=receiving_company_id,
        counterparty_company_id=paying_company_id,
        direction=DIRECTION_RECEIVABLE,
        is_debit=False,
        description=f"Intercompany receipt {reference}",
        **common,
    )
    return _mirror(db, payment_out, receipt)


def add_company_relationship(
    db: Session,
    *,
    parent_company_id: int,
    child_company_id: int,
    relationship_type: str,
    ownership_percentage: Decimal,
    consolidation_method: str,
    effective_from: date | None = None,
    clock: Clock | None = None,
) -> CompanyRelationship:
    if parent_company_id == child_company_id:
        raise ValueError("A company cannot be its own parent.")
    if db.get(Company, parent_company_id) is None:
        raise ValueError("Parent company not found.")
    if db.get(Company, child_company_id) is None:
        raise ValueError("Child company not found.")
    ownership = Decimal(str(ownership_percentage))
    if ownership <= 0 or ownership > 100:
        raise ValueError("Ownership percentage must be between 0 and 100.")

    relationship = CompanyRelationship(
        parent_company_id=parent_company_id,
        child_company_id=child_company_id,
        relationship_type=relationship_type,
        ownership_percentage=ownership,
        consolidation_method=consolidation_method,
        effective_from=effective_from or (clock or default_clock).today(),
        is_active=True,
    )
    db.add(relationship)
    db.flush()
    return relationship


def get_group_structure(db: Session, company_id: int) -> list[CompanyRelationship]:
    return (
        db.query(CompanyRelationship)
        .filter(
            CompanyRelationship.is_active.is_(True),
            or_(
                CompanyRelationship.parent_company_id == company_id,
                CompanyRelationship.child_company_id == company_id,
            ),
        )
        .order_by(CompanyRelationship.id.asc())
        .all()
    )


def _parent_ids(db: Session, company_id: int) -> set[int]:
    rows = (
        db.query(CompanyRelationship.parent_company_id)
        .filter(CompanyRelationship.child_company_id == company_id, CompanyRelationship.is_active.is_(True))
        .all()
    )
    return {parent_id for (parent_id,) in rows}


def are_companies_related(db: Session, company_id: int, other_company_id: int) -> bool:
    """Directly related (either direction) or siblings under a common parent."""
    if company_id == other_company_id:
        return False
    parents = _parent_ids(db, company_id)
    other_parents = _parent_ids(db, other_company_id)
    return other_company_id in parents or company_id in other_parents or bool(parents & other_parents)
