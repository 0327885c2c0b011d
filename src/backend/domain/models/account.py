from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field

from src.backend.domain.models.wire import WireModel


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class SubscriptionPlan(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    TEAM = "TEAM"
    COMPANY = "COMPANY"
    ENTERPRISE = "ENTERPRISE"


class AccountStatus(str, Enum):
    ACTIVE = "Active"
    TRIALING = "Trialing"
    CANCELLED = "Cancelled"


class HashedPassword(BaseModel):
    kind: Literal["hashed"] = "hashed"
    hash: str


class LegacyPlaintextPassword(BaseModel):
    """Password imported from the pre-bcrypt account format.

    Stores refuse to create records with this credential; existing ones are
    upgraded to :class:`HashedPassword` on the first successful login.
    """

    kind: Literal["legacy_plaintext"] = "legacy_plaintext"
    value: str


PasswordCredential = Annotated[
    Union[HashedPassword, LegacyPlaintextPassword],
    Field(discriminator="kind"),
]


class AccountPublic(WireModel):
    """Account fields that are safe to return to clients."""

    id: str
    email: EmailStr
    name: str
    role: UserRole
    team: str
    plan: SubscriptionPlan
    status: AccountStatus
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    client_id: Optional[str] = None


class Account(BaseModel):
    id: str
    # Always stored trimmed and lower-cased; unique across the store.
    email: EmailStr
    credential: PasswordCredential
    name: str
    role: UserRole = UserRole.ADMIN
    team: str = "Default Team"
    plan: SubscriptionPlan = SubscriptionPlan.INDIVIDUAL
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: datetime
    last_login: Optional[datetime] = None
    # Client organization the account was provisioned for, if any.
    client_id: Optional[str] = None

    def to_public(self) -> AccountPublic:
        return AccountPublic(**self.model_dump(exclude={"credential"}))


def normalize_email(email: str) -> str:
    return email.strip().lower()
