from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from src.backend.config import settings
from src.backend.domain.errors import ExpiredToken, MalformedToken, Unauthenticated
from src.backend.domain.models.account import UserRole
from src.backend.domain.models.identity import IdentityClaim


def issue_token(
    subject_id: str,
    email: str,
    role: UserRole | str,
    *,
    now: Optional[datetime] = None,
) -> str:
    """Create a signed session token carrying the caller's identity.

    The token expires ``settings.jwt_expiration_days`` after ``now``
    (defaults to the current UTC time). There is no server-side record of
    issued tokens.
    """

    issued_at = now or datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject_id,
        "email": email,
        "role": UserRole(role).value,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(days=settings.jwt_expiration_days)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: Optional[str]) -> IdentityClaim:
    """Decode ``token`` and return its identity claim.

    Raises:
        Unauthenticated: no token was supplied.
        ExpiredToken: the signature is valid but the expiry has passed.
        MalformedToken: bad signature, bad structure or missing claims.
    """

    if not token:
        raise Unauthenticated()

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require_exp": True, "require_sub": True},
        )
    except ExpiredSignatureError as exc:
        raise ExpiredToken() from exc
    except JWTError as exc:
        raise MalformedToken() from exc

    try:
        return IdentityClaim(
            subject_id=payload["sub"],
            email=payload["email"],
            role=payload["role"],
        )
    except (KeyError, PydanticValidationError) as exc:
        raise MalformedToken() from exc
