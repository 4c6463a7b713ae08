from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ledgercore.db import Base
from ledgercore.models import Account, Company

STANDARD_ACCOUNTS = [
    ("1141", "CGST Input", "ASSET"),
    ("1142", "SGST Input", "ASSET"),
    ("1143", "IGST Input", "ASSET"),
    ("1300", "Intercompany Receivable", "ASSET"),
    ("2102", "Employee Reimbursement Payable", "LIABILITY"),
    ("2300", "Intercompany Payable", "LIABILITY"),
    ("4000", "Sales", "INCOME"),
    ("5100", "General Expenses", "EXPENSE"),
    ("5200", "Travel Expenses", "EXPENSE"),
]


class FixedClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def today(self):
        return self.moment.date()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture()
def clock():
    return FixedClock(datetime(2025, 5, 10, 9, 30, tzinfo=timezone.utc))


@pytest.fixture()
def companies(db):
    """Three companies with the standard chart of accounts, returned as ids."""
    records = [Company(name=name, base_currency="INR") for name in ("Acme Holdings", "Acme Services", "Acme Retail")]
    db.add_all(records)
    db.flush()
    for company in records:
        for code, name, account_type in STANDARD_ACCOUNTS:
            db.add(Account(company_id=company.id, code=code, name=name, type=account_type, is_active=True))
    db.commit()
    return [company.id for company in records]
