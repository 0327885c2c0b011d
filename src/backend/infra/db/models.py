from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.backend.domain.models.account import (
    Account,
    AccountStatus,
    HashedPassword,
    LegacyPlaintextPassword,
    SubscriptionPlan,
    UserRole,
)


class Base(DeclarativeBase):
    pass


class AccountORM(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Stored lower-cased; the unique index is what resolves concurrent
    # signups for the same address.
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    # Exactly one of password_hash / legacy_password is set. legacy_password
    # only exists on rows imported from the old account format.
    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    legacy_password: Mapped[str | None] = mapped_column(String(256), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    team: Mapped[str] = mapped_column(String(200), nullable=False)
    plan: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    @classmethod
    def from_domain(cls, account: Account) -> "AccountORM":
        credential = account.credential
        return cls(
            id=account.id,
            email=account.email.lower(),
            password_hash=credential.hash if isinstance(credential, HashedPassword) else None,
            legacy_password=credential.value if isinstance(credential, LegacyPlaintextPassword) else None,
            name=account.name,
            role=account.role.value,
            team=account.team,
            plan=account.plan.value,
            status=account.status.value,
            created_at=account.created_at,
            last_login=account.last_login,
            client_id=account.client_id,
        )

    def to_domain(self) -> Account:
        if self.password_hash:
            credential: HashedPassword | LegacyPlaintextPassword = HashedPassword(hash=self.password_hash)
        else:
            credential = LegacyPlaintextPassword(value=self.legacy_password or "")
        return Account(
            id=self.id,
            email=self.email,
            credential=credential,
            name=self.name,
            role=UserRole(self.role),
            team=self.team,
            plan=SubscriptionPlan(self.plan),
            status=AccountStatus(self.status),
            created_at=self.created_at,
            last_login=self.last_login,
            client_id=self.client_id,
        )
