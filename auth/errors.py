"""
auth/errors.py -- Failure taxonomy for the identity and access layer.

Every failure carries an HTTP status and a machine-readable code so the
exception handler in api/main.py can render it without inspecting the type.

  InvalidCredential    bad, forged, or expired Google token -- sign in again
  Unauthenticated      missing, malformed, or forged session token
  SessionExpired       genuine session token past its absolute expiry; kept
                       distinct from Unauthenticated so a refresh flow can be
                       added later without weakening the forgery check
  UserNotFound         session refers to an account that no longer exists
  Forbidden            authenticated, but the role predicate failed
  ProviderUnavailable  Google's key endpoint could not be reached, or no client
                       id is configured

Nothing here is retried. Transient provider failures surface to the caller.

Layer rule: no imports from api/ or forum/.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 401
    code: str = "unauthenticated"
    default_message: str = "Authentication required."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredential(AuthError):
    code = "invalid_credential"
    default_message = "The identity provider token could not be verified."


class Unauthenticated(AuthError):
    code = "unauthenticated"
    default_message = "Authentication required."


class SessionExpired(AuthError):
    code = "session_expired"
    default_message = "Session has expired. Sign in again."


class UserNotFound(AuthError):
    code = "user_not_found"
    default_message = "The account for this session no longer exists."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class ProviderUnavailable(AuthError):
    status_code = 502
    code = "provider_unavailable"
    default_message = "The identity provider is unavailable. Try again later."

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
