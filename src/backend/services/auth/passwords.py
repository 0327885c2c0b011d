from __future__ import annotations

from typing import Optional

import bcrypt

from src.backend.config import settings


def hash_password(plaintext: str, *, rounds: Optional[int] = None) -> str:
    """Return a salted bcrypt hash for ``plaintext``.

    Raises ``ValueError`` on empty input; nothing else is rejected here
    (length rules belong to the signup flow).
    """

    if not plaintext:
        raise ValueError("Password must not be empty")
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")


def verify_password(plaintext: str, password_hash: str) -> bool:
    """Check ``plaintext`` against a bcrypt hash.

    Returns ``False`` for a mismatch, an empty password or a hash bcrypt
    cannot parse.
    """

    if not plaintext or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
