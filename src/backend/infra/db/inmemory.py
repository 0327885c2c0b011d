from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, Optional

from src.backend.domain.models.account import Account, HashedPassword
from src.backend.infra.db.repositories import AccountRepository, DuplicateAccountError, ensure_creatable


class InMemoryAccountRepository(AccountRepository):
    """Process-local account store.

    Used when no database is configured (local development and tests).
    Accounts are lost on restart. ``seed`` accepts pre-existing records,
    including legacy plaintext ones that ``create`` would refuse.
    """

    def __init__(self, seed: Iterable[Account] = ()) -> None:
        self._lock = threading.Lock()
        self._by_id: Dict[str, Account] = {}
        for account in seed:
            self._by_id[account.id] = account

    def _find_by_email_unlocked(self, email: str) -> Optional[Account]:
        needle = email.strip().lower()
        for account in self._by_id.values():
            if account.email.lower() == needle:
                return account
        return None

    def find_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            return self._find_by_email_unlocked(email)

    def find_by_id(self, account_id: str) -> Optional[Account]:
        with self._lock:
            return self._by_id.get(account_id)

    def create(self, account: Account) -> Account:
        ensure_creatable(account)
        with self._lock:
            if self._find_by_email_unlocked(account.email) is not None:
                raise DuplicateAccountError(account.email)
            self._by_id[account.id] = account
        return account

    def update_last_login(self, account_id: str, when: datetime) -> None:
        with self._lock:
            account = self._by_id.get(account_id)
            if account is not None:
                self._by_id[account_id] = account.model_copy(update={"last_login": when})

    def update_credential(self, account_id: str, credential: HashedPassword) -> None:
        with self._lock:
            account = self._by_id.get(account_id)
            if account is not None:
                self._by_id[account_id] = account.model_copy(update={"credential": credential})

    def update_email(self, account_id: str, email: str) -> Account:
        with self._lock:
            existing = self._find_by_email_unlocked(email)
            if existing is not None and existing.id != account_id:
                raise DuplicateAccountError(email)
            account = self._by_id[account_id]
            updated = account.model_copy(update={"email": email})
            self._by_id[account_id] = updated
            return updated

    def list_all(self) -> Iterable[Account]:
        with self._lock:
            accounts = list(self._by_id.values())
        return sorted(accounts, key=lambda a: a.created_at, reverse=True)


# Active repository singleton. ``init_sql_repositories`` swaps this for the
# SQL-backed implementation at startup; code should read it through
# ``get_account_repository`` so the swap is visible everywhere.
account_repository: AccountRepository = InMemoryAccountRepository()


def get_account_repository() -> AccountRepository:
    return account_repository


def set_account_repository(repository: AccountRepository) -> None:
    global account_repository
    account_repository = repository
