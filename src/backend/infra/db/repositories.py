from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from src.backend.domain.models.account import Account, HashedPassword


class DuplicateAccountError(Exception):
    """Raised by a repository when an email is already registered.

    For the SQL store this is the translated unique-constraint violation, so
    it is also what a concurrent signup race produces.
    """


class AccountRepository(ABC):
    """Persistence capability for account records.

    Emails passed in are expected to be normalized already (see
    ``normalize_email``); implementations still compare case-insensitively.
    """

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    def find_by_id(self, account_id: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    def create(self, account: Account) -> Account:
        """Persist a new account.

        Raises ``DuplicateAccountError`` if the email is taken and
        ``ValueError`` if the account carries a legacy plaintext credential.
        """
        raise NotImplementedError

    @abstractmethod
    def update_last_login(self, account_id: str, when: datetime) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_credential(self, account_id: str, credential: HashedPassword) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_email(self, account_id: str, email: str) -> Account:
        """Change the login email. Raises ``DuplicateAccountError`` if taken."""
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> Iterable[Account]:
        """Yield every account, newest first."""
        raise NotImplementedError


def ensure_creatable(account: Account) -> None:
    if not isinstance(account.credential, HashedPassword):
        raise ValueError("New accounts must carry a hashed password")
