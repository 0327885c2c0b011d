from __future__ import annotations

from pydantic import BaseModel

from src.backend.domain.models.account import AccountPublic, UserRole
from src.backend.domain.models.wire import WireModel


class IdentityClaim(BaseModel):
    """Identity embedded in a session token.

    The claim reflects the account at the moment the token was issued; a
    later role change is not visible until the user logs in again.
    """

    model_config = {"frozen": True}

    subject_id: str
    email: str
    role: UserRole


class AuthenticatedSession(WireModel):
    """Result of a successful login, signup or email change."""

    token: str
    user: AccountPublic
