from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from src.backend.domain.errors import (
    AppError,
    Conflict,
    Forbidden,
    InternalError,
    InvalidCredentials,
    Unauthenticated,
    ValidationError,
)
from src.backend.domain.models.account import (
    Account,
    AccountPublic,
    HashedPassword,
    SubscriptionPlan,
    UserRole,
    normalize_email,
)
from src.backend.domain.models.identity import AuthenticatedSession, IdentityClaim
from src.backend.infra.db.inmemory import get_account_repository
from src.backend.infra.db.repositories import AccountRepository, DuplicateAccountError
from src.backend.services.audit.service import audit_service
from src.backend.services.auth.passwords import hash_password
from src.backend.services.auth.resolvers import IdentityResolver, build_default_resolvers, check_credential
from src.backend.services.auth.tokens import issue_token

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


def _missing(**fields: Optional[str]) -> List[str]:
    return [name for name, value in fields.items() if not value or not value.strip()]


def _validate_email_shape(email: str) -> None:
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format.")


def _validate_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class AuthService:
    """Login, signup and account maintenance flows.

    Login walks an ordered list of identity resolvers; signup and the
    maintenance operations go to the account store directly. Unexpected store
    failures are logged and surfaced as :class:`InternalError`.
    """

    def __init__(
        self,
        *,
        resolvers: Optional[Sequence[IdentityResolver]] = None,
        repository: Optional[Callable[[], AccountRepository]] = None,
    ) -> None:
        self._resolvers: List[IdentityResolver] = list(resolvers) if resolvers is not None else build_default_resolvers()
        self._repository = repository or get_account_repository

    def login(self, email: Optional[str], password: Optional[str]) -> AuthenticatedSession:
        if _missing(email=email, password=password):
            raise ValidationError("Email and password are required.")

        assert email is not None and password is not None
        email_normalized = normalize_email(email)
        try:
            account = self._resolve(email_normalized, password)
        except InvalidCredentials:
            audit_service.log_event(action="login", resource_type="account", outcome="failure")
            raise

        token = issue_token(account.id, account.email, account.role)
        audit_service.log_event(
            action="login",
            resource_type="account",
            resource_id=account.id,
            subject=account.id,
            extra={"role": account.role.value},
        )
        return AuthenticatedSession(token=token, user=account)

    def _resolve(self, email: str, password: str) -> AccountPublic:
        for resolver in self._resolvers:
            try:
                account = resolver.resolve(email, password)
            except AppError:
                raise
            except Exception as exc:
                logger.exception("Identity lookup failed during login")
                raise InternalError() from exc
            if account is not None:
                return account
        raise InvalidCredentials()

    def signup(
        self,
        *,
        email: Optional[str],
        password: Optional[str],
        name: Optional[str],
        team: Optional[str] = None,
        plan: Optional[str] = None,
        role: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> AuthenticatedSession:
        missing = _missing(email=email, password=password, name=name)
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}.")
        assert email is not None and password is not None and name is not None

        email_normalized = normalize_email(email)
        _validate_email_shape(email_normalized)
        _validate_password_length(password)

        account_role = self._parse_role(role)
        account_plan = self._parse_plan(plan)

        if self._is_reserved(email_normalized):
            raise Conflict("This email is reserved.")

        repository = self._repository()
        try:
            existing = repository.find_by_email(email_normalized)
        except Exception as exc:
            logger.exception("Account lookup failed during signup")
            raise InternalError() from exc
        if existing is not None:
            raise Conflict("Email already registered.")

        try:
            account = Account(
                id=str(uuid4()),
                email=email_normalized,
                credential=HashedPassword(hash=hash_password(password)),
                name=name.strip(),
                role=account_role,
                team=(team or "").strip() or "Default Team",
                plan=account_plan,
                created_at=datetime.now(timezone.utc),
                client_id=client_id or None,
            )
        except PydanticValidationError as exc:
            raise ValidationError("Invalid email format.") from exc

        try:
            repository.create(account)
        except DuplicateAccountError as exc:
            # Lost a race with a concurrent signup for the same address.
            raise Conflict("Email already registered.") from exc
        except Exception as exc:
            logger.exception("Failed to persist new account")
            raise InternalError() from exc

        token = issue_token(account.id, account.email, account.role)
        audit_service.log_event(
            action="signup",
            resource_type="account",
            resource_id=account.id,
            subject=account.id,
            extra={"role": account.role.value, "plan": account.plan.value},
        )
        return AuthenticatedSession(token=token, user=account.to_public())

    @staticmethod
    def _parse_role(role: Optional[str]) -> UserRole:
        if not role:
            return UserRole.ADMIN
        try:
            parsed = UserRole(role.strip().upper())
        except ValueError as exc:
            raise ValidationError("Role must be ADMIN or MEMBER.") from exc
        if parsed == UserRole.SUPER_ADMIN:
            raise ValidationError("Role must be ADMIN or MEMBER.")
        return parsed

    @staticmethod
    def _parse_plan(plan: Optional[str]) -> SubscriptionPlan:
        if not plan:
            return SubscriptionPlan.INDIVIDUAL
        try:
            return SubscriptionPlan(plan.strip().upper())
        except ValueError as exc:
            allowed = ", ".join(p.value for p in SubscriptionPlan)
            raise ValidationError(f"Plan must be one of: {allowed}.") from exc

    def _is_reserved(self, email: str) -> bool:
        return any(resolver.reserves(email) for resolver in self._resolvers)

    def get_account(self, claim: IdentityClaim) -> AccountPublic:
        for resolver in self._resolvers:
            try:
                account = resolver.lookup(claim.subject_id)
            except Exception as exc:
                logger.exception("Account lookup failed for subject %s", claim.subject_id)
                raise InternalError() from exc
            if account is not None:
                return account
        raise Unauthenticated("Account not found. Please log in again.")

    def _load_stored_account(self, claim: IdentityClaim) -> Account:
        if self._is_reserved(normalize_email(claim.email)):
            raise Forbidden("Built-in accounts cannot be modified.")
        try:
            account = self._repository().find_by_id(claim.subject_id)
        except Exception as exc:
            logger.exception("Account lookup failed for subject %s", claim.subject_id)
            raise InternalError() from exc
        if account is None:
            raise Unauthenticated("Account not found. Please log in again.")
        return account

    def change_password(
        self,
        claim: IdentityClaim,
        *,
        current_password: Optional[str],
        new_password: Optional[str],
    ) -> AccountPublic:
        missing = _missing(current_password=current_password, new_password=new_password)
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}.")
        assert current_password is not None and new_password is not None

        account = self._load_stored_account(claim)
        if not check_credential(account.credential, current_password):
            raise InvalidCredentials("Current password is incorrect.")
        _validate_password_length(new_password)

        try:
            self._repository().update_credential(account.id, HashedPassword(hash=hash_password(new_password)))
        except Exception as exc:
            logger.exception("Failed to update password for account %s", account.id)
            raise InternalError() from exc

        audit_service.log_event(action="change_password", resource_type="account", resource_id=account.id)
        return account.to_public()

    def change_email(
        self,
        claim: IdentityClaim,
        *,
        new_email: Optional[str],
        password: Optional[str],
    ) -> AuthenticatedSession:
        missing = _missing(new_email=new_email, password=password)
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}.")
        assert new_email is not None and password is not None

        email_normalized = normalize_email(new_email)
        _validate_email_shape(email_normalized)

        account = self._load_stored_account(claim)
        if not check_credential(account.credential, password):
            raise InvalidCredentials("Password is incorrect.")
        if self._is_reserved(email_normalized):
            raise Conflict("This email is reserved.")

        try:
            updated = self._repository().update_email(account.id, email_normalized)
        except DuplicateAccountError as exc:
            raise Conflict("Email already registered.") from exc
        except Exception as exc:
            logger.exception("Failed to update email for account %s", account.id)
            raise InternalError() from exc

        audit_service.log_event(action="change_email", resource_type="account", resource_id=account.id)
        token = issue_token(updated.id, updated.email, updated.role)
        return AuthenticatedSession(token=token, user=updated.to_public())

    def list_accounts(self) -> List[AccountPublic]:
        try:
            return [account.to_public() for account in self._repository().list_all()]
        except Exception as exc:
            logger.exception("Failed to list accounts")
            raise InternalError() from exc


auth_service = AuthService()
