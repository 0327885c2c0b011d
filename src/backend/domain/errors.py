from __future__ import annotations

from typing import Dict, Optional


class AppError(Exception):
    """Base class for errors that map onto a stable HTTP response.

    ``code`` is the machine-readable kind and ``message`` a single
    user-facing sentence. Routes do not catch these; the exception handler in
    ``main`` renders them as ``{"error": message, "code": code}``.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None) -> None:
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "The request is missing required information."


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password."


class Unauthenticated(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Authentication required. Please log in."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class MalformedToken(Unauthenticated):
    code = "MALFORMED_TOKEN"
    default_message = "Invalid token. Please log in again."


class ExpiredToken(Unauthenticated):
    code = "EXPIRED_TOKEN"
    default_message = "Token expired. Please log in again."


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action."


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Email already registered."


class PayloadTooLarge(AppError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"
    default_message = "Audio file is too large. Please use a shorter clip or paste the transcript instead."


class InternalError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"


class ProviderUnavailable(AppError):
    status_code = 503
    code = "PROVIDER_UNAVAILABLE"
    default_message = "Audio analysis is unavailable right now. Try pasting the transcript instead."
