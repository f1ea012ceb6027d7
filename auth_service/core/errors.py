# auth_service/core/errors.py
"""
Closed set of application errors.

Call sites branch on the exception class (and on the ``reason`` enums for
token failures), never on message text. ``main.py`` renders every
``AppError`` with the envelope ``{code, message, details?}``.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal error."

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request."


class MissingEmail(ValidationError):
    code = "MISSING_EMAIL"
    message = "Email is required. Grant the email permission or supply it from the original sign-in."


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
    message = "Authentication failed."


class InvalidCredential(AuthenticationError):
    code = "INVALID_CREDENTIAL"
    message = "Provider credential could not be verified."


class RefreshFailure(str, Enum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"


class RefreshTokenError(AuthenticationError):
    code = "REFRESH_TOKEN_INVALID"
    message = "Refresh token is invalid. Discard stored tokens and sign in again."

    def __init__(self, reason: RefreshFailure, *, reuse: bool = False):
        super().__init__()
        self.reason = reason
        self.reuse = reuse


class AccessFailure(str, Enum):
    MISSING_HEADER = "missing_header"
    MALFORMED_HEADER = "malformed_header"
    INVALID_OR_EXPIRED = "invalid_or_expired"


class AccessTokenError(AuthenticationError):
    code = "UNAUTHORIZED"

    _MESSAGES = {
        AccessFailure.MISSING_HEADER: "No authorization header provided.",
        AccessFailure.MALFORMED_HEADER: "Invalid authorization header format. Expected: Bearer <token>.",
        AccessFailure.INVALID_OR_EXPIRED: "Invalid or expired access token.",
    }

    def __init__(self, reason: AccessFailure):
        super().__init__(self._MESSAGES[reason])
        self.reason = reason


class ProviderUnavailable(AppError):
    status_code = 502
    code = "PROVIDER_UNAVAILABLE"
    message = "Identity provider is unavailable. Try again later."


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflicting account state."


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found."


class InternalError(AppError):
    pass
