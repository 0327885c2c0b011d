from __future__ import annotations

from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Depends, Header

from src.backend.config import settings
from src.backend.domain.errors import Forbidden, Unauthenticated
from src.backend.domain.models.account import UserRole
from src.backend.domain.models.identity import IdentityClaim
from src.backend.services.auth.tokens import verify_token

# Context variable storing the subject id of the authenticated caller for the
# in-flight request. The audit logger reads it to attribute events without
# ever seeing the token itself.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any."""

    return _current_subject.get()


def authenticate_bearer(authorization: Optional[str]) -> IdentityClaim:
    """Validate an ``Authorization`` header value and return its claim.

    Accepts only the ``Bearer <token>`` scheme. Any failure raises a subclass
    of :class:`Unauthenticated`; callers must not continue past it.
    """

    if not authorization:
        raise Unauthenticated("Missing Authorization: Bearer <token> header.")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Missing Authorization: Bearer <token> header.")

    claim = verify_token(token.strip())
    _current_subject.set(claim.subject_id)
    return claim


async def get_current_claim(authorization: Optional[str] = Header(None)) -> IdentityClaim:
    """FastAPI dependency that gates a route behind a valid bearer token."""

    _current_subject.set(None)
    return authenticate_bearer(authorization)


async def get_optional_claim(authorization: Optional[str] = Header(None)) -> Optional[IdentityClaim]:
    """Gate used by /analysis/call.

    Enforces the bearer token only when ANALYSIS_REQUIRE_AUTH is enabled.
    Otherwise a supplied token is still validated (so audit events are
    attributed) and an absent one yields ``None``.
    """

    _current_subject.set(None)
    if settings.analysis_require_auth or authorization:
        return authenticate_bearer(authorization)
    return None


def require_role(claim: IdentityClaim, role: UserRole) -> bool:
    """Raise :class:`Forbidden` unless ``claim`` carries exactly ``role``.

    There is no role hierarchy: a SUPER_ADMIN does not satisfy an ADMIN check.
    """

    if claim.role != role:
        raise Forbidden(f"Forbidden. {role.value} role required.")
    return True


def role_required(role: UserRole) -> Callable[..., IdentityClaim]:
    """Dependency factory wrapping :func:`require_role` for routes."""

    async def role_checker(claim: IdentityClaim = Depends(get_current_claim)) -> IdentityClaim:
        require_role(claim, role)
        return claim

    return role_checker
