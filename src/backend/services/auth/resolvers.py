from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from src.backend.config import settings
from src.backend.domain.errors import InvalidCredentials
from src.backend.domain.models.account import (
    AccountPublic,
    AccountStatus,
    HashedPassword,
    LegacyPlaintextPassword,
    PasswordCredential,
    SubscriptionPlan,
    UserRole,
    normalize_email,
)
from src.backend.infra.db.inmemory import get_account_repository
from src.backend.infra.db.repositories import AccountRepository
from src.backend.services.auth.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)

_dummy_hash: Optional[str] = None


def _timing_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("timing-equalizer-password")
    return _dummy_hash


def check_credential(credential: PasswordCredential, password: str) -> bool:
    """Return True when ``password`` matches the stored credential."""

    if isinstance(credential, HashedPassword):
        return verify_password(password, credential.hash)
    if isinstance(credential, LegacyPlaintextPassword):
        return bool(credential.value) and credential.value == password
    return False


class IdentityResolver(Protocol):
    """One step of the ordered login policy.

    ``resolve`` returns the authenticated account when it owns and accepts
    the credentials, ``None`` to let the next resolver try, or raises
    :class:`InvalidCredentials` to stop the chain.
    """

    def resolve(self, email: str, password: str) -> Optional[AccountPublic]:  # pragma: no cover - interface
        raise NotImplementedError

    def reserves(self, email: str) -> bool:  # pragma: no cover - interface
        """Whether ``email`` is unavailable for new signups."""
        raise NotImplementedError

    def lookup(self, subject_id: str) -> Optional[AccountPublic]:  # pragma: no cover - interface
        """Return the account behind a token subject, if this resolver owns it."""
        raise NotImplementedError


class ReservedAccountResolver:
    """Resolver for a single account defined in configuration.

    With ``exclusive=True`` the resolver claims its email outright: a wrong
    password ends the login with InvalidCredentials instead of falling
    through to later resolvers.
    """

    def __init__(self, *, email: str, password: str, account: AccountPublic, exclusive: bool) -> None:
        self._email = normalize_email(email)
        self._password = password
        self._account = account
        self._exclusive = exclusive

    @property
    def account(self) -> AccountPublic:
        return self._account

    def resolve(self, email: str, password: str) -> Optional[AccountPublic]:
        if email != self._email:
            return None
        if self._password and password == self._password:
            return self._account
        if self._exclusive:
            raise InvalidCredentials()
        return None

    def reserves(self, email: str) -> bool:
        return email == self._email

    def lookup(self, subject_id: str) -> Optional[AccountPublic]:
        return self._account if subject_id == self._account.id else None


def super_admin_resolver() -> ReservedAccountResolver:
    email = normalize_email(settings.super_admin_email)
    return ReservedAccountResolver(
        email=email,
        password=settings.super_admin_password,
        exclusive=True,
        account=AccountPublic(
            id="super-admin-1",
            email=email,
            name="Super Admin",
            role=UserRole.SUPER_ADMIN,
            team="Admin",
            plan=SubscriptionPlan.ENTERPRISE,
            status=AccountStatus.ACTIVE,
        ),
    )


def demo_account_resolver() -> ReservedAccountResolver:
    email = normalize_email(settings.demo_email)
    return ReservedAccountResolver(
        email=email,
        password=settings.demo_password,
        exclusive=False,
        account=AccountPublic(
            id="demo-1",
            email=email,
            name="Demo User",
            role=UserRole.ADMIN,
            team="Demo Team",
            plan=SubscriptionPlan.COMPANY,
            status=AccountStatus.ACTIVE,
        ),
    )


class StoredAccountResolver:
    """Resolver backed by the account store; always terminal.

    Legacy plaintext credentials are upgraded to bcrypt hashes on the first
    successful login. Store read errors propagate to the caller.
    """

    def __init__(self, repository: Optional[Callable[[], AccountRepository]] = None) -> None:
        self._repository = repository or get_account_repository

    def resolve(self, email: str, password: str) -> Optional[AccountPublic]:
        repository = self._repository()
        account = repository.find_by_email(email)
        if account is None:
            # Spend the same bcrypt work as a real check so a missing
            # account is not distinguishable by response time.
            verify_password(password, _timing_dummy_hash())
            raise InvalidCredentials()

        if not check_credential(account.credential, password):
            raise InvalidCredentials()

        now = datetime.now(timezone.utc)
        try:
            if isinstance(account.credential, LegacyPlaintextPassword):
                repository.update_credential(account.id, HashedPassword(hash=hash_password(password)))
                logger.info("Migrated legacy plaintext password to bcrypt for account %s", account.id)
            repository.update_last_login(account.id, now)
        except Exception:
            # Post-login bookkeeping is best-effort; the credentials were valid.
            logger.exception("Failed to update account %s after login", account.id)

        return account.model_copy(update={"last_login": now}).to_public()

    def reserves(self, email: str) -> bool:
        return False

    def lookup(self, subject_id: str) -> Optional[AccountPublic]:
        account = self._repository().find_by_id(subject_id)
        return account.to_public() if account is not None else None


def build_default_resolvers() -> List[IdentityResolver]:
    """Resolvers in priority order: super-admin, demo, then the store."""

    return [super_admin_resolver(), demo_account_resolver(), StoredAccountResolver()]
