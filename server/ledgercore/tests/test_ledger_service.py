import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from ledgercore.accounting import service
from ledgercore.accounting.posting import ENTRY_TYPE_REVERSAL, JournalLineInput, SourceEvent
from ledgercore.accounting.results import PostingStatus
from ledgercore.accounting.service import (
    get_by_source,
    has_posting,
    post_event,
    reverse_journal_entry,
)
from ledgercore.models import Account, JournalEntry
from ledgercore.tests.conftest import FixedClock


def _balanced_lines(amount="100.00"):
    return [
        JournalLineInput(account_code="5100", debit=Decimal(amount), description="Office supplies"),
        JournalLineInput(account_code="2102", credit=Decimal(amount), description="Payable"),
    ]


def _event(company_id, lines=None, source_id="V-1", entry_date=date(2025, 5, 10), **kwargs):
    lines = _balanced_lines() if lines is None else lines
    return SourceEvent(
        source_type="voucher",
        source_id=source_id,
        company_id=company_id,
        entry_date=entry_date,
        line_builder=lambda context: lines,
        source_number=f"VCH-{source_id}",
        **kwargs,
    )


def _account_id(db, company_id, code):
    return db.query(Account.id).filter(Account.company_id == company_id, Account.code == code).scalar()


def test_post_event_creates_balanced_entry_in_financial_period(db, companies, clock):
    company_id = companies[0]

    result = post_event(db, _event(company_id), clock=clock)
    db.commit()

    assert result.status == PostingStatus.POSTED
    entry = result.entry
    assert entry.journal_number == "JV/2025-26/0001"
    assert entry.financial_year == "2025-26"
    assert entry.period_month == 2
    assert entry.idempotency_key == "VOUCHER_V-1"
    assert entry.status == "posted"
    assert entry.total_debit == Decimal("100.00")
    assert entry.total_credit == Decimal("100.00")
    assert [line.line_number for line in entry.lines] == [1, 2]
    assert entry.lines[0].account_id == _account_id(db, company_id, "5100")
    assert sum(line.debit for line in entry.lines) == sum(line.credit for line in entry.lines)


def test_journal_numbers_are_sequential_per_company_and_year(db, companies, clock):
    first = post_event(db, _event(companies[0], source_id="1"), clock=clock)
    second = post_event(db, _event(companies[0], source_id="2"), clock=clock)
    other_company = post_event(db, _event(companies[1], source_id="3"), clock=clock)
    next_year = post_event(db, _event(companies[0], source_id="4", entry_date=date(2026, 4, 1)), clock=clock)
    db.commit()

    assert first.entry.journal_number == "JV/2025-26/0001"
    assert second.entry.journal_number == "JV/2025-26/0002"
    assert other_company.entry.journal_number == "JV/2025-26/0001"
    assert next_year.entry.journal_number == "JV/2026-27/0001"


def test_posting_the_same_source_twice_returns_existing_entry(db, companies, clock):
    first = post_event(db, _event(companies[0]), clock=clock)
    db.commit()
    second = post_event(db, _event(companies[0]), clock=clock)

    assert second.status == PostingStatus.ALREADY_POSTED
    assert second.ok
    assert second.entry.id == first.entry.id
    assert len(second.entry.lines) == len(first.entry.lines)
    assert db.query(JournalEntry).count() == 1


def test_unresolvable_account_makes_entry_unbalanced(db, companies, clock, caplog):
    caplog.set_level(logging.WARNING, logger="ledgercore.accounting.service")
    lines = [
        JournalLineInput(account_code="5100", debit=Decimal("100.00")),
        JournalLineInput(account_code="9999", credit=Decimal("100.00"), description="Missing account"),
    ]

    result = post_event(db, _event(companies[0], lines=lines), clock=clock)

    assert result.status == PostingStatus.UNBALANCED
    assert not result.ok
    assert [line.account_code for line in result.skipped_lines] == ["9999"]
    assert db.query(JournalEntry).count() == 0
    assert "Account 9999 not found" in caplog.text
    assert "not balanced" in caplog.text


def test_skipped_lines_that_cancel_out_still_post(db, companies, clock):
    lines = _balanced_lines() + [
        JournalLineInput(account_code="9998", debit=Decimal("50.00")),
        JournalLineInput(account_code="9999", credit=Decimal("50.00")),
    ]

    result = post_event(db, _event(companies[0], lines=lines), clock=clock)

    assert result.status == PostingStatus.POSTED
    assert len(result.entry.lines) == 2
    assert len(result.skipped_lines) == 2


def test_inactive_accounts_are_not_posted_to(db, companies, clock):
    account = db.query(Account).filter(Account.company_id == companies[0], Account.code == "2102").one()
    account.is_active = False
    db.commit()

    result = post_event(db, _event(companies[0]), clock=clock)

    assert result.status == PostingStatus.UNBALANCED


def test_no_resolvable_lines_is_reported(db, companies, clock):
    lines = [
        JournalLineInput(account_code="9998", debit=Decimal("10.00")),
        JournalLineInput(account_code="9999", credit=Decimal("10.00")),
    ]

    result = post_event(db, _event(companies[0], lines=lines), clock=clock)

    assert result.status == PostingStatus.NO_LINES
    assert db.query(JournalEntry).count() == 0


def test_zero_amount_lines_are_dropped(db, companies, clock):
    lines = _balanced_lines() + [JournalLineInput(account_code="1141", description="No tax")]

    result = post_event(db, _event(companies[0], lines=lines), clock=clock)

    assert result.status == PostingStatus.POSTED
    assert len(result.entry.lines) == 2
    assert result.skipped_lines == []


def test_miscalculated_builder_is_never_plugged(db, companies, clock):
    lines = [
        JournalLineInput(account_code="5100", debit=Decimal("100.00")),
        JournalLineInput(account_code="2102", credit=Decimal("99.00")),
    ]

    result = post_event(db, _event(companies[0], lines=lines), clock=clock)

    assert result.status == PostingStatus.UNBALANCED
    assert result.skipped_lines == []
    assert db.query(JournalEntry).count() == 0


def test_line_with_both_sides_is_rejected(db, companies, clock):
    lines = [JournalLineInput(account_code="5100", debit=Decimal("10"), credit=Decimal("10"))]

    result = post_event(db, _event(companies[0], lines=lines), clock=clock)

    assert result.status == PostingStatus.INVALID_LINE
    assert db.query(JournalEntry).count() == 0


def test_concurrent_insert_resolves_to_existing_entry(db, companies, clock, monkeypatch):
    first = post_event(db, _event(companies[0]), clock=clock)
    db.commit()

    real_lookup = service.get_by_idempotency_key
    calls = []

    def stale_lookup(session, key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return real_lookup(session, key)

    monkeypatch.setattr(service, "get_by_idempotency_key", stale_lookup)
    second = post_event(db, _event(companies[0]), clock=clock)

    assert second.status == PostingStatus.ALREADY_POSTED
    assert second.entry.id == first.entry.id
    assert db.query(JournalEntry).count() == 1


def test_taken_journal_number_is_renumbered(db, companies, clock, monkeypatch, caplog):
    caplog.set_level(logging.WARNING, logger="ledgercore.accounting.service")
    post_event(db, _event(companies[0], source_id="V-1"), clock=clock)
    db.commit()

    real_next_number = service._next_journal_number
    calls = []

    def stale_next_number(session, company_id, financial_year):
        calls.append(company_id)
        if len(calls) == 1:
            return f"JV/{financial_year}/0001"
        return real_next_number(session, company_id, financial_year)

    monkeypatch.setattr(service, "_next_journal_number", stale_next_number)
    result = post_event(db, _event(companies[0], source_id="V-2"), clock=clock)
    db.commit()

    assert result.status == PostingStatus.POSTED
    assert result.entry.journal_number == "JV/2025-26/0002"
    assert result.entry.source_id == "V-2"
    assert len(result.entry.lines) == 2
    assert len(calls) == 2
    assert db.query(JournalEntry).count() == 2
    assert "Renumbering" in caplog.text


def test_has_posting_and_get_by_source(db, companies, clock):
    assert not has_posting(db, "voucher", "V-1")

    post_event(db, _event(companies[0]), clock=clock)
    db.commit()

    assert has_posting(db, "voucher", "V-1")
    assert not has_posting(db, "voucher", "V-2")
    assert [entry.source_number for entry in get_by_source(db, "voucher", "V-1")] == ["VCH-V-1"]


def test_reversal_negates_lines_and_links_entries(db, companies, clock):
    posted = post_event(db, _event(companies[0]), clock=clock)
    db.commit()
    original_id = posted.entry.id
    later = FixedClock(datetime(2026, 4, 2, 11, 0, tzinfo=timezone.utc))

    result = reverse_journal_entry(db, original_id, reversed_by="auditor", reason="Duplicate bill", clock=later)
    db.commit()

    assert result.status == PostingStatus.POSTED
    reversal = result.entry
    original = db.get(JournalEntry, original_id)
    assert reversal.entry_type == ENTRY_TYPE_REVERSAL
    assert reversal.journal_date == date(2026, 4, 2)
    assert reversal.financial_year == "2026-27"
    assert reversal.period_month == 1
    assert reversal.journal_number == "JV/2026-27/0001"
    assert reversal.reversal_of_id == original_id
    assert reversal.idempotency_key == f"REVERSAL_{original_id}"
    assert original.status == "reversed"
    assert original.reversed_by_id == reversal.id
    for before, after in zip(original.lines, reversal.lines):
        assert after.account_id == before.account_id
        assert after.debit == before.credit
        assert after.credit == before.debit
    assert reversal.lines[0].description == "Reversal: Office supplies"
    assert reversal.total_debit == reversal.total_credit

    assert has_posting(db, "voucher", "V-1")
    assert len(get_by_source(db, "voucher", "V-1")) == 2


def test_reversal_is_rejected_when_already_reversed_or_a_reversal(db, companies, clock):
    posted = post_event(db, _event(companies[0]), clock=clock)
    db.commit()
    original_id = posted.entry.id
    reversal = reverse_journal_entry(db, original_id, reversed_by="auditor", clock=clock)
    db.commit()
    reversal_id = reversal.entry.id

    again = reverse_journal_entry(db, original_id, reversed_by="auditor", clock=clock)
    nested = reverse_journal_entry(db, reversal_id, reversed_by="auditor", clock=clock)
    missing = reverse_journal_entry(db, 9999, reversed_by="auditor", clock=clock)

    assert again.status == PostingStatus.ALREADY_REVERSED
    assert again.entry.id == reversal_id
    assert nested.status == PostingStatus.NOT_REVERSIBLE
    assert missing.status == PostingStatus.NOT_FOUND
    assert db.query(JournalEntry).count() == 2
