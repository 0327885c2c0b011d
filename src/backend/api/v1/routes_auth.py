from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from src.backend.domain.models.account import AccountPublic, UserRole
from src.backend.domain.models.identity import AuthenticatedSession, IdentityClaim
from src.backend.domain.models.wire import WireModel
from src.backend.security import get_current_claim, role_required
from src.backend.services.audit.service import audit_service
from src.backend.services.auth.service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


# Request fields are optional at the schema level so that missing values
# reach the service and come back as a 400 naming the field.
class LoginRequest(WireModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SignupRequest(WireModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    team: Optional[str] = None
    plan: Optional[str] = None
    role: Optional[str] = None
    client_id: Optional[str] = None


class ChangePasswordRequest(WireModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class ChangeEmailRequest(WireModel):
    new_email: Optional[str] = None
    password: Optional[str] = None


class AccountResponse(WireModel):
    user: AccountPublic


class LogoutResponse(BaseModel):
    status: str
    detail: str


@router.post("/login", response_model=AuthenticatedSession)
async def login(request: LoginRequest) -> AuthenticatedSession:
    """Exchange email and password for a session token.

    Password hashing is CPU-bound, so the service runs in the threadpool.
    """

    return await run_in_threadpool(auth_service.login, request.email, request.password)


@router.post("/signup", response_model=AuthenticatedSession, status_code=status.HTTP_201_CREATED)
async def signup(request: SignupRequest) -> AuthenticatedSession:
    return await run_in_threadpool(
        lambda: auth_service.signup(
            email=request.email,
            password=request.password,
            name=request.name,
            team=request.team,
            plan=request.plan,
            role=request.role,
            client_id=request.client_id,
        )
    )


@router.get("/me", response_model=AccountResponse)
async def me(claim: IdentityClaim = Depends(get_current_claim)) -> AccountResponse:
    account = await run_in_threadpool(auth_service.get_account, claim)
    return AccountResponse(user=account)


@router.post("/password", response_model=AccountResponse)
async def change_password(
    request: ChangePasswordRequest,
    claim: IdentityClaim = Depends(get_current_claim),
) -> AccountResponse:
    account = await run_in_threadpool(
        lambda: auth_service.change_password(
            claim,
            current_password=request.current_password,
            new_password=request.new_password,
        )
    )
    return AccountResponse(user=account)


@router.post("/email", response_model=AuthenticatedSession)
async def change_email(
    request: ChangeEmailRequest,
    claim: IdentityClaim = Depends(get_current_claim),
) -> AuthenticatedSession:
    """Change the login email and return a token that carries it."""

    return await run_in_threadpool(
        lambda: auth_service.change_email(claim, new_email=request.new_email, password=request.password)
    )


@router.get("/users", response_model=List[AccountPublic])
async def list_users(claim: IdentityClaim = Depends(role_required(UserRole.SUPER_ADMIN))) -> List[AccountPublic]:
    accounts = await run_in_threadpool(auth_service.list_accounts)
    audit_service.log_event(action="list_accounts", resource_type="account", extra={"count": len(accounts)})
    return accounts


@router.post("/logout", response_model=LogoutResponse)
async def logout(claim: IdentityClaim = Depends(get_current_claim)) -> LogoutResponse:
    """Acknowledge a logout.

    Tokens are stateless and are not revoked here: the client must discard
    its copy, and the token stays valid until it expires.
    """

    audit_service.log_event(action="logout", resource_type="account", resource_id=claim.subject_id)
    return LogoutResponse(status="ok", detail="Discard the token on the client; it is not revoked server-side.")
