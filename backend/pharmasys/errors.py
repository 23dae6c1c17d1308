# Overview: Error taxonomy shared by services, guards and routes.

"""
Domain errors and their HTTP mapping.

Every error carries the status code the API answers with, so routes can
translate any of them with a single `error_response(e)` call. Messages are
client-facing: keep them free of internal detail.

InvalidCredentials deliberately has one message for "unknown user" and
"wrong password", and InvalidCode has one message for "wrong code" and
"expired code".
"""

from __future__ import annotations

from flask import jsonify


class PharmaSysError(Exception):
    """Base class for errors that map to a client-facing HTTP response."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.extra)
        return body


class InvalidCredentials(PharmaSysError):
    status_code = 401
    default_message = "Invalid credentials"


class Unauthorized(PharmaSysError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(PharmaSysError):
    status_code = 403
    default_message = "Forbidden: you don't have permission to access this resource"


class MFARequired(PharmaSysError):
    """Second factor missing for this session; clients should prompt for it."""

    status_code = 403
    default_message = "MFA required"

    def __init__(self, message: str | None = None, **extra):
        extra.setdefault("mfa_required", True)
        super().__init__(message, **extra)


class NotEnrolled(PharmaSysError):
    status_code = 400
    default_message = "MFA is not set up for this account"


class InvalidCode(PharmaSysError):
    status_code = 400
    default_message = "Invalid or expired code"


class EnrollmentIncomplete(PharmaSysError):
    status_code = 400
    default_message = "To enable MFA, generate a secret and verify a code first"


class ValidationError(PharmaSysError, ValueError):
    """400-level input problem."""

    status_code = 400
    default_message = "Invalid request"


class NotFound(PharmaSysError):
    status_code = 404
    default_message = "Not found"


class ConflictError(PharmaSysError):
    """409-level business rule conflict."""

    status_code = 409
    default_message = "Conflict"


class InsufficientStock(ConflictError):
    default_message = "Insufficient stock"


class OrderStateError(ConflictError):
    default_message = "Operation not allowed in the current order status"


class AccountLocked(PharmaSysError):
    status_code = 429
    default_message = "Account temporarily locked due to too many failed login attempts"

    def __init__(self, retry_after_seconds: int | None = None, message: str | None = None):
        super().__init__(
            message,
            locked=True,
            retry_after_seconds=retry_after_seconds,
        )


def error_response(error: PharmaSysError):
    """Build the (response, status) pair Flask expects from a domain error."""
    return jsonify(error.to_dict()), error.status_code
