import pytest

from src.backend.config import settings
from src.backend.domain.errors import (
    Conflict,
    Forbidden,
    InternalError,
    InvalidCredentials,
    Unauthenticated,
    ValidationError,
)
from src.backend.domain.models.account import SubscriptionPlan, UserRole
from src.backend.domain.models.identity import IdentityClaim
from src.backend.infra.db.inmemory import InMemoryAccountRepository
from src.backend.infra.db.repositories import DuplicateAccountError
from src.backend.services.auth.passwords import verify_password
from src.backend.services.auth.resolvers import StoredAccountResolver
from src.backend.services.auth.service import AuthService
from src.backend.services.auth.tokens import verify_token


def _signup(service: AuthService, email: str = "rep@example.com", password: str = "longenough1", **extra):
    return service.signup(email=email, password=password, name="Rep One", **extra)


def test_signup_stores_hashed_password_and_returns_token(account_store):
    session = _signup(AuthService(), email="  Rep@Example.COM ")

    assert session.user.email == "rep@example.com"
    assert session.user.role == UserRole.ADMIN
    assert session.user.team == "Default Team"
    assert session.user.plan == SubscriptionPlan.INDIVIDUAL

    stored = account_store.find_by_email("rep@example.com")
    assert stored is not None
    assert stored.credential.kind == "hashed"
    assert stored.credential.hash != "longenough1"
    assert verify_password("longenough1", stored.credential.hash)

    claim = verify_token(session.token)
    assert claim.subject_id == session.user.id
    assert claim.role == UserRole.ADMIN


def test_signup_accepts_member_role_and_plan():
    session = _signup(AuthService(), role="member", plan="team", team="East")

    assert session.user.role == UserRole.MEMBER
    assert session.user.plan == SubscriptionPlan.TEAM
    assert session.user.team == "East"


@pytest.mark.parametrize(
    "fields",
    [
        {"email": None, "password": "longenough1", "name": "A"},
        {"email": "a@example.com", "password": "", "name": "A"},
        {"email": "a@example.com", "password": "longenough1", "name": "   "},
    ],
)
def test_signup_requires_email_password_and_name(fields):
    with pytest.raises(ValidationError) as excinfo:
        AuthService().signup(**fields)
    assert "Missing required field" in excinfo.value.message


@pytest.mark.parametrize("email", ["not-an-email", "a@b", "a b@example.com"])
def test_signup_rejects_malformed_email(email):
    with pytest.raises(ValidationError):
        _signup(AuthService(), email=email)


def test_signup_rejects_short_password():
    with pytest.raises(ValidationError) as excinfo:
        _signup(AuthService(), password="short")
    assert "at least 8" in excinfo.value.message


@pytest.mark.parametrize("role", ["SUPER_ADMIN", "owner"])
def test_signup_rejects_privileged_or_unknown_role(role):
    with pytest.raises(ValidationError):
        _signup(AuthService(), role=role)


def test_signup_rejects_unknown_plan():
    with pytest.raises(ValidationError):
        _signup(AuthService(), plan="PLATINUM")


def test_signup_rejects_reserved_emails():
    service = AuthService()

    with pytest.raises(Conflict):
        _signup(service, email=settings.super_admin_email)
    with pytest.raises(Conflict):
        _signup(service, email=settings.demo_email.upper())


def test_signup_rejects_duplicate_email_case_insensitively():
    service = AuthService()
    _signup(service, email="rep@example.com")

    with pytest.raises(Conflict):
        _signup(service, email="REP@example.com")


def test_signup_race_on_create_is_reported_as_conflict():
    class RacingRepository(InMemoryAccountRepository):
        def find_by_email(self, email):
            return None

        def create(self, account):
            raise DuplicateAccountError(account.email)

    repository = RacingRepository()
    service = AuthService(repository=lambda: repository)

    with pytest.raises(Conflict):
        _signup(service)


def test_signup_store_failure_is_internal_error():
    class BrokenRepository(InMemoryAccountRepository):
        def create(self, account):
            raise RuntimeError("connection reset")

    repository = BrokenRepository()
    service = AuthService(repository=lambda: repository)

    with pytest.raises(InternalError):
        _signup(service)


def test_login_returns_token_for_stored_account():
    service = AuthService()
    created = _signup(service)

    session = service.login("REP@example.com", "longenough1")

    assert session.user.id == created.user.id
    assert session.user.last_login is not None
    assert verify_token(session.token).subject_id == created.user.id


def test_login_unknown_email_and_wrong_password_look_the_same():
    service = AuthService()
    _signup(service)

    with pytest.raises(InvalidCredentials) as unknown:
        service.login("ghost@example.com", "longenough1")
    with pytest.raises(InvalidCredentials) as wrong:
        service.login("rep@example.com", "wrong-password")

    assert unknown.value.message == wrong.value.message == "Invalid email or password."


def test_login_requires_both_fields():
    with pytest.raises(ValidationError):
        AuthService().login("rep@example.com", None)
    with pytest.raises(ValidationError):
        AuthService().login("", "longenough1")


def test_login_store_failure_is_internal_error():
    class BrokenRepository(InMemoryAccountRepository):
        def find_by_email(self, email):
            raise RuntimeError("connection reset")

    repository = BrokenRepository()
    service = AuthService(resolvers=[StoredAccountResolver(lambda: repository)], repository=lambda: repository)

    with pytest.raises(InternalError):
        service.login("rep@example.com", "longenough1")


def test_super_admin_and_demo_login():
    service = AuthService()

    admin = service.login(settings.super_admin_email, settings.super_admin_password)
    demo = service.login(settings.demo_email, settings.demo_password)

    assert admin.user.role == UserRole.SUPER_ADMIN
    assert demo.user.role == UserRole.ADMIN


def test_get_account_resolves_reserved_and_stored_subjects():
    service = AuthService()
    created = _signup(service)

    stored = service.get_account(verify_token(created.token))
    admin = service.get_account(IdentityClaim(subject_id="super-admin-1", email="x@example.com", role=UserRole.SUPER_ADMIN))

    assert stored.id == created.user.id
    assert admin.role == UserRole.SUPER_ADMIN


def test_get_account_for_deleted_subject_is_unauthenticated():
    claim = IdentityClaim(subject_id="gone", email="gone@example.com", role=UserRole.ADMIN)

    with pytest.raises(Unauthenticated):
        AuthService().get_account(claim)


def test_change_password_requires_current_password():
    service = AuthService()
    created = _signup(service)
    claim = verify_token(created.token)

    with pytest.raises(InvalidCredentials):
        service.change_password(claim, current_password="not-it-at-all", new_password="brand-new-pass")

    service.change_password(claim, current_password="longenough1", new_password="brand-new-pass")

    with pytest.raises(InvalidCredentials):
        service.login("rep@example.com", "longenough1")
    assert service.login("rep@example.com", "brand-new-pass").user.id == created.user.id


def test_change_password_enforces_minimum_length():
    service = AuthService()
    claim = verify_token(_signup(service).token)

    with pytest.raises(ValidationError):
        service.change_password(claim, current_password="longenough1", new_password="short")


def test_reserved_accounts_cannot_be_modified():
    service = AuthService()
    admin = service.login(settings.super_admin_email, settings.super_admin_password)

    with pytest.raises(Forbidden):
        service.change_password(
            verify_token(admin.token),
            current_password=settings.super_admin_password,
            new_password="another-password",
        )


def test_change_email_issues_token_with_new_email():
    service = AuthService()
    created = _signup(service)

    session = service.change_email(verify_token(created.token), new_email="New@Example.com", password="longenough1")

    assert session.user.email == "new@example.com"
    assert verify_token(session.token).email == "new@example.com"
    assert service.login("new@example.com", "longenough1").user.id == created.user.id
    with pytest.raises(InvalidCredentials):
        service.login("rep@example.com", "longenough1")


def test_change_email_rejects_taken_and_reserved_addresses():
    service = AuthService()
    _signup(service, email="taken@example.com")
    claim = verify_token(_signup(service, email="rep@example.com").token)

    with pytest.raises(Conflict):
        service.change_email(claim, new_email="taken@example.com", password="longenough1")
    with pytest.raises(Conflict):
        service.change_email(claim, new_email=settings.demo_email, password="longenough1")
    with pytest.raises(InvalidCredentials):
        service.change_email(claim, new_email="fresh@example.com", password="wrong-password")


def test_list_accounts_returns_public_records_newest_first():
    service = AuthService()
    first = _signup(service, email="first@example.com")
    second = _signup(service, email="second@example.com")

    accounts = service.list_accounts()

    assert [a.id for a in accounts] == [second.user.id, first.user.id]
    assert all(not hasattr(a, "credential") for a in accounts)
