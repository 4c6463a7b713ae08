import logging
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ledgercore.accounting.chart import AccountResolver, ChartOfAccountLookup
from ledgercore.accounting.periods import resolve_period
from ledgercore.accounting.posting import (
    ENTRY_TYPE_REVERSAL,
    STATUS_POSTED,
    STATUS_REVERSED,
    InvalidJournalLineError,
    PostingContext,
    SourceEvent,
    UnbalancedEntryError,
    ensure_balanced,
    make_idempotency_key,
    totals,
    validate_line,
)
from ledgercore.accounting.results import PostingResult, PostingStatus
from ledgercore.clock import Clock, default_clock
from ledgercore.models import JournalEntry, JournalLine
from ledgercore.utils import quantize_money

logger = logging.getLogger(__name__)

JOURNAL_NUMBER_ATTEMPTS = 3


def _entry_query(db: Session):
    return db.query(JournalEntry).options(selectinload(JournalEntry.lines))


def get_by_idempotency_key(db: Session, idempotency_key: str) -> Optional[JournalEntry]:
    return _entry_query(db).filter(JournalEntry.idempotency_key == idempotency_key).first()


def get_by_source(db: Session, source_type: str, source_id: object) -> list[JournalEntry]:
    return (
        _entry_query(db)
        .filter(JournalEntry.source_type == source_type, JournalEntry.source_id == str(source_id))
        .order_by(JournalEntry.journal_date.asc(), JournalEntry.id.asc())
        .all()
    )


def has_posting(db: Session, source_type: str, source_id: object) -> bool:
    entry_id = (
        db.query(JournalEntry.id)
        .filter(
            JournalEntry.source_type == source_type,
            JournalEntry.source_id == str(source_id),
            JournalEntry.entry_type != ENTRY_TYPE_REVERSAL,
        )
        .first()
    )
    return entry_id is not None


def _next_journal_number(db: Session, company_id: int, financial_year: str) -> str:
    count = (
        db.query(func.count(JournalEntry.id))
        .filter(JournalEntry.company_id == company_id, JournalEntry.financial_year == financial_year)
        .scalar()
        or 0
    )
    return f"JV/{financial_year}/{count + 1:04d}"


def _persist(db: Session, build_entry: Callable[[], JournalEntry]) -> JournalEntry:
    """Insert a freshly built entry with its lines inside a SAVEPOINT.

    Journal numbers are a per-company, per-year count, so a concurrent posting can take
    the number first; the entry is then rebuilt and renumbered. An ``IntegrityError``
    on the idempotency key is left for the caller to resolve.
    """
    attempt = 1
    while True:
        entry = build_entry()
        try:
            with db.begin_nested():
                entry.journal_number = _next_journal_number(db, entry.company_id, entry.financial_year)
                db.add(entry)
                db.flush()
            return entry
        except IntegrityError:
            if attempt == JOURNAL_NUMBER_ATTEMPTS or get_by_idempotency_key(db, entry.idempotency_key):
                raise
            logger.warning(
                "Journal number %s already taken for company %s. Renumbering (attempt %s)",
                entry.journal_number,
                entry.company_id,
                attempt,
            )
            attempt += 1


def post_event(
    db: Session,
    event: SourceEvent,
    *,
    accounts: AccountResolver | None = None,
    clock: Clock | None = None,
) -> PostingResult:
    accounts = accounts or ChartOfAccountLookup(db)
    clock = clock or default_clock
    idempotency_key = event.key

    existing = get_by_idempotency_key(db, idempotency_key)
    if existing:
        logger.info(
            "Journal already exists for %s %s. Returning existing entry %s",
            event.source_type,
            event.source_id,
            existing.journal_number,
        )
        return PostingResult(PostingStatus.ALREADY_POSTED, entry=existing)

    period = resolve_period(event.entry_date)
    context = PostingContext(
        company_id=event.company_id,
        entry_date=event.entry_date,
        financial_year=period.financial_year,
        period_month=period.period_month,
        source_type=event.source_type,
        source_id=str(event.source_id),
        source_number=event.source_number,
    )

    line_inputs = list(event.line_builder(context))
    try:
        for line_input in line_inputs:
            validate_line(line_input)
    except InvalidJournalLineError as exc:
        logger.error("Invalid journal line for %s %s: %s", event.source_type, event.source_id, exc)
        return PostingResult(PostingStatus.INVALID_LINE, message=str(exc))

    line_values: list[dict] = []
    skipped = []
    for line_input in line_inputs:
        if line_input.is_empty:
            continue
        account_id = accounts.resolve(event.company_id, line_input.account_code)
        if account_id is None:
            logger.warning(
                "Account %s not found for company %s. Skipping line: %s",
                line_input.account_code,
                event.company_id,
                line_input.description,
            )
            skipped.append(line_input)
            continue
        line_values.append(
            dict(
                account_id=account_id,
                line_number=len(line_values) + 1,
                debit=quantize_money(line_input.debit),
                credit=quantize_money(line_input.credit),
                description=line_input.description,
                currency=line_input.currency,
                exchange_rate=line_input.exchange_rate,
                subledger_type=line_input.subledger_type,
                subledger_id=str(line_input.subledger_id) if line_input.subledger_id is not None else None,
            )
        )

    if not line_values:
        logger.error(
            "No journal lines created for %s %s. Check if accounts exist.",
            event.source_type,
            event.source_id,
        )
        return PostingResult(
            PostingStatus.NO_LINES,
            message="No journal lines could be created.",
            skipped_lines=skipped,
        )

    lines = [JournalLine(**values) for values in line_values]
    total_debit, total_credit = totals(lines)
    try:
        ensure_balanced(lines)
    except UnbalancedEntryError as exc:
        logger.error(
            "Journal for %s %s is not balanced. Debit: %s, Credit: %s, skipped lines: %s. "
            "This indicates a calculation error.",
            event.source_type,
            event.source_id,
            total_debit,
            total_credit,
            len(skipped),
        )
        return PostingResult(PostingStatus.UNBALANCED, message=str(exc), skipped_lines=skipped)

    posted_at = clock.now()

    def build_entry() -> JournalEntry:
        entry = JournalEntry(
            company_id=event.company_id,
            journal_date=event.entry_date,
            financial_year=period.financial_year,
            period_month=period.period_month,
            entry_type=event.entry_type,
            source_type=event.source_type,
            source_id=str(event.source_id),
            source_number=event.source_number,
            description=event.description,
            narration=event.narration,
            rule_code=event.rule_code,
            idempotency_key=idempotency_key,
            status=STATUS_POSTED,
            posted_at=posted_at,
            posted_by=event.posted_by,
            total_debit=total_debit,
            total_credit=total_credit,
        )
        entry.lines = [JournalLine(**values) for values in line_values]
        return entry

    try:
        entry = _persist(db, build_entry)
    except IntegrityError:
        winner = get_by_idempotency_key(db, idempotency_key)
        if winner is None:
            raise
        logger.info(
            "Concurrent posting for %s %s resolved to existing entry %s",
            event.source_type,
            event.source_id,
            winner.journal_number,
        )
        return PostingResult(PostingStatus.ALREADY_POSTED, entry=winner, skipped_lines=skipped)

    logger.info(
        "Created journal %s for %s %s. Debit: %s, Credit: %s",
        entry.journal_number,
        event.source_type,
        event.source_id,
        total_debit,
        total_credit,
    )
    return PostingResult(PostingStatus.POSTED, entry=entry, skipped_lines=skipped)


def reverse_journal_entry(
    db: Session,
    journal_entry_id: int,
    *,
    reversed_by: str,
    reason: str | None = None,
    clock: Clock | None = None,
) -> PostingResult:
    clock = clock or default_clock
    original = _entry_query(db).filter(JournalEntry.id == journal_entry_id).with_for_update().first()
    if original is None:
        return PostingResult(PostingStatus.NOT_FOUND, message="Journal entry not found.")
    if original.entry_type == ENTRY_TYPE_REVERSAL:
        return PostingResult(
            PostingStatus.NOT_REVERSIBLE,
            entry=original,
            message="A reversal entry cannot itself be reversed.",
        )
    if original.is_reversed or original.reversed_by_id is not None:
        reversal = db.get(JournalEntry, original.reversed_by_id) if original.reversed_by_id else None
        return PostingResult(
            PostingStatus.ALREADY_REVERSED,
            entry=reversal,
            message=f"Journal entry {original.journal_number} has already been reversed.",
        )

    reversal_date = clock.today()
    period = resolve_period(reversal_date)
    description = f"Reversal of {original.journal_number}"
    if reason:
        description = f"{description}: {reason}"

    reversal_key = make_idempotency_key(ENTRY_TYPE_REVERSAL, original.id)
    posted_at = clock.now()
    reversed_lines = [
        dict(
            account_id=line.account_id,
            line_number=line.line_number,
            debit=line.credit,
            credit=line.debit,
            description=f"Reversal: {line.description}" if line.description else "Reversal",
            currency=line.currency,
            exchange_rate=line.exchange_rate,
            subledger_type=line.subledger_type,
            subledger_id=line.subledger_id,
        )
        for line in original.lines
    ]

    def build_reversal() -> JournalEntry:
        reversal = JournalEntry(
            company_id=original.company_id,
            journal_date=reversal_date,
            financial_year=period.financial_year,
            period_month=period.period_month,
            entry_type=ENTRY_TYPE_REVERSAL,
            source_type=original.source_type,
            source_id=original.source_id,
            source_number=original.source_number,
            description=description[:255],
            narration=reason,
            rule_code=original.rule_code,
            idempotency_key=reversal_key,
            status=STATUS_POSTED,
            posted_at=posted_at,
            posted_by=reversed_by,
            total_debit=original.total_credit,
            total_credit=original.total_debit,
            reversal_of_id=original.id,
        )
        reversal.lines = [JournalLine(**values) for values in reversed_lines]
        return reversal

    try:
        reversal = _persist(db, build_reversal)
    except IntegrityError:
        existing = get_by_idempotency_key(db, reversal_key)
        if existing is None:
            raise
        return PostingResult(PostingStatus.ALREADY_REVERSED, entry=existing)

    original.status = STATUS_REVERSED
    original.reversed_by_id = reversal.id
    db.flush()

    logger.info(
        "Reversed journal %s with %s by %s",
        original.journal_number,
        reversal.journal_number,
        reversed_by,
    )
    return PostingResult(PostingStatus.POSTED, entry=reversal)
