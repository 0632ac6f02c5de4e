"""
auth/errors.py -- Error taxonomy for registration, login and token checks.

Every error a caller can see is an AuthError carrying a stable public code,
an HTTP status and a client-safe message. api/main.py renders them through a
single exception handler, so auth/ never imports fastapi here.

IdentityNotFound and InvalidPassword are deliberately identical on the wire
(same code, status and message) so a client cannot tell an unknown account
from a wrong password. They remain distinct classes, and carry a `reason`, so
server-side logs can still tell them apart.

A failed token check is not an error: authenticate_token() returns None.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "auth_error"
    status_code = 400
    message = "Request rejected."
    reason = ""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail


class BadCredentialFormat(AuthError):
    """Malformed session secret, or a password outside the length bounds."""

    code = "bad_data"
    status_code = 400
    message = "The request data is invalid."


class PasswordTooSimple(AuthError):
    code = "password_too_simple"
    status_code = 400
    message = "Password must be at least 8 characters."


class _BadCredentials(AuthError):
    code = "bad_credentials"
    status_code = 401
    message = "Invalid identity or password."


class IdentityNotFound(_BadCredentials):
    reason = "identity_not_found"


class InvalidPassword(_BadCredentials):
    reason = "invalid_password"


class PersistenceFailure(AuthError):
    """A storage or transaction fault. The cause is logged, never returned."""

    code = "server_error"
    status_code = 500
    message = "An internal error occurred. Please try again."
