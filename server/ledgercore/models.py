from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    base_currency = Column(String(10), nullable=False, default="INR")
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    accounts = relationship("Account", back_populates="company")


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    type = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    company = relationship("Company", back_populates="accounts")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
    )


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    journal_number = Column(String(40), nullable=False)
    journal_date = Column(Date, nullable=False)
    financial_year = Column(String(7), nullable=False)
    period_month = Column(Integer, nullable=False)
    entry_type = Column(String(20), nullable=False, default="auto_post")
    source_type = Column(String(50), nullable=False)
    source_id = Column(String(64), nullable=True)
    source_number = Column(String(100), nullable=True)
    description = Column(String(255), nullable=True)
    narration = Column(Text, nullable=True)
    rule_code = Column(String(50), nullable=True)
    idempotency_key = Column(String(150), nullable=True, unique=True)
    status = Column(String(20), nullable=False, default="posted")
    posted_at = Column(DateTime, nullable=False)
    posted_by = Column(String(64), nullable=True)
    total_debit = Column(Numeric(14, 2), nullable=False, default=0)
    total_credit = Column(Numeric(14, 2), nullable=False, default=0)
    reversal_of_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    reversed_by_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)

    lines = relationship(
        "JournalLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
    )

    __table_args__ = (
        UniqueConstraint("company_id", "journal_number", name="uq_journal_company_number"),
        Index("ix_journal_entries_source", "source_type", "source_id"),
    )

    @property
    def is_reversed(self) -> bool:
        return self.status == "reversed"


class JournalLine(Base):
    __tablename__ = "journal_lines"

    id = Column(Integer, primary_key=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    line_number = Column(Integer, nullable=False)
    description = Column(String(255), nullable=True)
    debit = Column(Numeric(14, 2), nullable=False, default=0)
    credit = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    exchange_rate = Column(Numeric(18, 6), nullable=False, default=1)
    subledger_type = Column(String(50), nullable=True)
    subledger_id = Column(String(64), nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")


class CompanyRelationship(Base):
    __tablename__ = "company_relationships"

    id = Column(Integer, primary_key=True)
    parent_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    child_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    relationship_type = Column(String(30), nullable=False)
    ownership_percentage = Column(Numeric(5, 2), nullable=False)
    consolidation_method = Column(String(30), nullable=False)
    effective_from = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("parent_company_id", "child_company_id", name="uq_company_relationship"),
    )


class IntercompanyTransaction(Base):
    __tablename__ = "intercompany_transactions"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    counterparty_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    transaction_date = Column(Date, nullable=False)
    financial_year = Column(String(7), nullable=False)
    transaction_type = Column(String(20), nullable=False)
    transaction_direction = Column(String(20), nullable=False)
    source_document_type = Column(String(50), nullable=False)
    source_document_id = Column(String(64), nullable=False)
    source_document_number = Column(String(100), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    amount_in_inr = Column(Numeric(14, 2), nullable=True)
    description = Column(String(255), nullable=True)
    counterparty_transaction_id = Column(Integer, ForeignKey("intercompany_transactions.id"), nullable=True)
    mirror_status = Column(String(20), nullable=False, default="pending")
    is_reconciled = Column(Boolean, default=False, nullable=False)
    reconciled_by = Column(String(64), nullable=True)
    reconciled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "source_document_type",
            "source_document_id",
            name="uq_interco_company_source_document",
        ),
        Index("ix_interco_unreconciled", "is_reconciled", "company_id"),
    )


class IntercompanyBalance(Base):
    __tablename__ = "intercompany_balances"

    id = Column(Integer, primary_key=True)
    from_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    to_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    balance_amount = Column(Numeric(16, 2), nullable=False, default=0)
    last_transaction_date = Column(Date, nullable=True)
    transaction_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("from_company_id", "to_company_id", name="uq_interco_balance_pair"),
    )
