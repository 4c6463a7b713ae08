"""ledger core

Revision ID: 0001_ledger_core
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_ledger_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("base_currency", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("company_id", "code", name="uq_account_company_code"),
    )
    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("journal_number", sa.String(length=40), nullable=False),
        sa.Column("journal_date", sa.Date(), nullable=False),
        sa.Column("financial_year", sa.String(length=7), nullable=False),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("entry_type", sa.String(length=20), nullable=False),
        sa.Column("source_type", sa.String(length=50), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=True),
        sa.Column("source_number", sa.String(length=100), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("narration", sa.Text(), nullable=True),
        sa.Column("rule_code", sa.String(length=50), nullable=True),
        sa.Column("idempotency_key", sa.String(length=150), nullable=True, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("posted_at", sa.DateTime(), nullable=False),
        sa.Column("posted_by", sa.String(length=64), nullable=True),
        sa.Column("total_debit", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_credit", sa.Numeric(14, 2), nullable=False),
        sa.Column("reversal_of_id", sa.Integer(), sa.ForeignKey("journal_entries.id"), nullable=True),
        sa.Column("reversed_by_id", sa.Integer(), sa.ForeignKey("journal_entries.id"), nullable=True),
        sa.UniqueConstraint("company_id", "journal_number", name="uq_journal_company_number"),
    )
    op.create_index("ix_journal_entries_source", "journal_entries", ["source_type", "source_id"], unique=False)
    op.create_table(
        "journal_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("journal_entry_id", sa.Integer(), sa.ForeignKey("journal_entries.id"), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("debit", sa.Numeric(14, 2), nullable=False),
        sa.Column("credit", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("subledger_type", sa.String(length=50), nullable=True),
        sa.Column("subledger_id", sa.String(length=64), nullable=True),
    )
    op.create_table(
        "company_relationships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("parent_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("child_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("relationship_type", sa.String(length=30), nullable=False),
        sa.Column("ownership_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("consolidation_method", sa.String(length=30), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("parent_company_id", "child_company_id", name="uq_company_relationship"),
    )
    op.create_table(
        "intercompany_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("counterparty_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("financial_year", sa.String(length=7), nullable=False),
        sa.Column("transaction_type", sa.String(length=20), nullable=False),
        sa.Column("transaction_direction", sa.String(length=20), nullable=False),
        sa.Column("source_document_type", sa.String(length=50), nullable=False),
        sa.Column("source_document_id", sa.String(length=64), nullable=False),
        sa.Column("source_document_number", sa.String(length=100), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("amount_in_inr", sa.Numeric(14, 2), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column(
            "counterparty_transaction_id",
            sa.Integer(),
            sa.ForeignKey("intercompany_transactions.id"),
            nullable=True,
        ),
        sa.Column("mirror_status", sa.String(length=20), nullable=False),
        sa.Column("is_reconciled", sa.Boolean(), nullable=False),
        sa.Column("reconciled_by", sa.String(length=64), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "company_id",
            "source_document_type",
            "source_document_id",
            name="uq_interco_company_source_document",
        ),
    )
    op.create_index(
        "ix_interco_unreconciled",
        "intercompany_transactions",
        ["is_reconciled", "company_id"],
        unique=False,
    )
    op.create_table(
        "intercompany_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("from_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("to_company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("balance_amount", sa.Numeric(16, 2), nullable=False),
        sa.Column("last_transaction_date", sa.Date(), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.UniqueConstraint("from_company_id", "to_company_id", name="uq_interco_balance_pair"),
    )


def downgrade() -> None:
    op.drop_table("intercompany_balances")
    op.drop_index("ix_interco_unreconciled", table_name="intercompany_transactions")
    op.drop_table("intercompany_transactions")
    op.drop_table("company_relationships")
    op.drop_table("journal_lines")
    op.drop_index("ix_journal_entries_source", table_name="journal_entries")
    op.drop_table("journal_entries")
    op.drop_table("accounts")
    op.drop_table("companies")
