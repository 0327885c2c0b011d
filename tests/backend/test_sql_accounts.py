from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from src.backend.config import settings
from src.backend.domain.models.account import Account, HashedPassword, LegacyPlaintextPassword, UserRole
from src.backend.infra.db.bootstrap import init_sql_repositories
from src.backend.infra.db.inmemory import InMemoryAccountRepository, get_account_repository
from src.backend.infra.db.models import AccountORM, Base
from src.backend.infra.db.repositories import DuplicateAccountError
from src.backend.infra.db.session import create_engine_for_url, create_sqlalchemy_session_factory
from src.backend.infra.db.sql_accounts import SqlAccountRepository


@pytest.fixture
def session_factory():
    engine = create_engine_for_url("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return create_sqlalchemy_session_factory(engine)


@pytest.fixture
def repository(session_factory):
    return SqlAccountRepository(session_factory)


def _account(account_id: str, email: str, created_at: datetime) -> Account:
    return Account(
        id=account_id,
        email=email,
        credential=HashedPassword(hash="$2b$04$abcdefghijklmnopqrstuu5E1gYq8rS0dC5pS2mF6e0J7xL0cY9aW"),
        name="Rep",
        role=UserRole.MEMBER,
        created_at=created_at,
    )


def test_create_and_find_case_insensitively(repository):
    created = datetime(2024, 3, 1, tzinfo=timezone.utc)
    repository.create(_account("acct-1", "rep@example.com", created))

    by_email = repository.find_by_email("REP@Example.com")
    by_id = repository.find_by_id("acct-1")

    assert by_email is not None and by_id is not None
    assert by_email.id == by_id.id == "acct-1"
    assert by_email.role == UserRole.MEMBER
    assert isinstance(by_email.credential, HashedPassword)
    assert repository.find_by_email("other@example.com") is None


def test_duplicate_email_raises(repository):
    created = datetime(2024, 3, 1, tzinfo=timezone.utc)
    repository.create(_account("acct-1", "rep@example.com", created))

    with pytest.raises(DuplicateAccountError):
        repository.create(_account("acct-2", "rep@example.com", created))


def test_create_refuses_legacy_credentials(repository):
    account = _account("acct-1", "rep@example.com", datetime(2024, 3, 1, tzinfo=timezone.utc))
    legacy = account.model_copy(update={"credential": LegacyPlaintextPassword(value="plain")})

    with pytest.raises(ValueError):
        repository.create(legacy)


def test_legacy_rows_load_and_upgrade(repository, session_factory):
    session = session_factory()
    session.add(
        AccountORM(
            id="legacy-1",
            email="old@example.com",
            password_hash=None,
            legacy_password="plain-old",
            name="Old Rep",
            role="ADMIN",
            team="Default Team",
            plan="INDIVIDUAL",
            status="Active",
            created_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
    )
    session.commit()
    session.close()

    loaded = repository.find_by_id("legacy-1")
    assert loaded is not None
    assert loaded.credential == LegacyPlaintextPassword(value="plain-old")

    repository.update_credential("legacy-1", HashedPassword(hash="$2b$04$upgraded"))

    upgraded = repository.find_by_id("legacy-1")
    assert upgraded is not None
    assert upgraded.credential == HashedPassword(hash="$2b$04$upgraded")


def test_updates_last_login_and_email(repository):
    created = datetime(2024, 3, 1, tzinfo=timezone.utc)
    repository.create(_account("acct-1", "rep@example.com", created))
    repository.create(_account("acct-2", "taken@example.com", created))

    when = datetime(2024, 3, 2, 9, 30)
    repository.update_last_login("acct-1", when)
    moved = repository.update_email("acct-1", "moved@example.com")

    assert moved.email == "moved@example.com"
    reloaded = repository.find_by_email("moved@example.com")
    assert reloaded is not None
    assert reloaded.last_login is not None
    assert reloaded.last_login.replace(tzinfo=None) == when

    with pytest.raises(DuplicateAccountError):
        repository.update_email("acct-1", "taken@example.com")


def test_list_all_newest_first(repository):
    repository.create(_account("older", "older@example.com", datetime(2024, 1, 1, tzinfo=timezone.utc)))
    repository.create(_account("newer", "newer@example.com", datetime(2024, 6, 1, tzinfo=timezone.utc)))

    assert [account.id for account in repository.list_all()] == ["newer", "older"]


def test_bootstrap_swaps_in_sql_store():
    assert init_sql_repositories("sqlite:///:memory:", force=True) is True
    assert isinstance(get_account_repository(), SqlAccountRepository)


def test_bootstrap_keeps_in_memory_store_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "use_sql_repos", False)

    assert init_sql_repositories("sqlite:///:memory:") is False
    assert isinstance(get_account_repository(), InMemoryAccountRepository)


def test_id_collision_is_not_reported_as_duplicate_email(repository):
    created = datetime(2024, 3, 1, tzinfo=timezone.utc)
    repository.create(_account("acct-1", "rep@example.com", created))

    with pytest.raises(IntegrityError):
        repository.create(_account("acct-1", "someone-else@example.com", created))

    assert repository.find_by_email("someone-else@example.com") is None
