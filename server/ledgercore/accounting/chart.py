from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ledgercore.models import Account


class AccountResolver(Protocol):
    def resolve(self, company_id: int, account_code: str) -> Optional[int]: ...


class ChartOfAccountLookup:
    """Resolves (company, account code) to an account id from the chart of accounts.

    Lookups are cached for the lifetime of the instance, which is one posting call.
    """

    def __init__(self, db: Session):
        self.db = db
        self._cache: dict[tuple[int, str], Optional[int]] = {}

    def resolve(self, company_id: int, account_code: str) -> Optional[int]:
        key = (company_id, account_code)
        if key not in self._cache:
            account_id = (
                self.db.query(Account.id)
                .filter(
                    Account.company_id == company_id,
                    Account.code == account_code,
                    Account.is_active.is_(True),
                )
                .scalar()
            )
            self._cache[key] = account_id
        return self._cache[key]
