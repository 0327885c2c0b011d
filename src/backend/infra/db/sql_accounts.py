from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from src.backend.domain.models.account import Account, HashedPassword
from src.backend.infra.db.models import AccountORM
from src.backend.infra.db.repositories import AccountRepository, DuplicateAccountError, ensure_creatable
from src.backend.infra.db.session import SessionFactory


class SqlAccountRepository(AccountRepository):
    """SQL-backed AccountRepository.

    Works against any SQLAlchemy database URL; production points it at the
    hosted Postgres instance. Uniqueness of ``email`` is enforced by the
    table's unique index, and violations surface as
    ``DuplicateAccountError``.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def find_by_email(self, email: str) -> Optional[Account]:
        session = self._session_factory()
        try:
            orm = session.execute(
                select(AccountORM).where(func.lower(AccountORM.email) == email.strip().lower())
            ).scalar_one_or_none()
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def find_by_id(self, account_id: str) -> Optional[Account]:
        session = self._session_factory()
        try:
            orm = session.get(AccountORM, account_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def create(self, account: Account) -> Account:
        ensure_creatable(account)
        session = self._session_factory()
        try:
            session.add(AccountORM.from_domain(account))
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            session.close()
            if self._email_taken(account.email, exclude_id=None):
                raise DuplicateAccountError(account.email) from exc
            raise
        finally:
            session.close()
        return account

    def update_last_login(self, account_id: str, when: datetime) -> None:
        self._update(account_id, last_login=when)

    def update_credential(self, account_id: str, credential: HashedPassword) -> None:
        self._update(account_id, password_hash=credential.hash, legacy_password=None)

    def update_email(self, account_id: str, email: str) -> Account:
        session = self._session_factory()
        try:
            orm = session.get(AccountORM, account_id)
            if orm is None:
                raise KeyError(account_id)
            orm.email = email.lower()
            session.commit()
            return orm.to_domain()
        except IntegrityError as exc:
            session.rollback()
            session.close()
            if self._email_taken(email, exclude_id=account_id):
                raise DuplicateAccountError(email) from exc
            raise
        finally:
            session.close()

    def list_all(self) -> Iterable[Account]:
        session = self._session_factory()
        try:
            rows = session.execute(select(AccountORM).order_by(AccountORM.created_at.desc())).scalars().all()
            return [orm.to_domain() for orm in rows]
        finally:
            session.close()

    def _email_taken(self, email: str, *, exclude_id: Optional[str]) -> bool:
        # Only a clash on the email index is a duplicate signup; other
        # integrity failures (id collision, missing column value) propagate.
        existing = self.find_by_email(email)
        return existing is not None and existing.id != exclude_id

    def _update(self, account_id: str, **values) -> None:
        session = self._session_factory()
        try:
            session.execute(update(AccountORM).where(AccountORM.id == account_id).values(**values))
            session.commit()
        finally:
            session.close()
