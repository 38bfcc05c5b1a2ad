"""
auth/errors.py -- Exception taxonomy for the identity and access-control core.

Every failure the core can report is a subclass of AuthError. The classes are
grouped so the HTTP boundary can collapse security-sensitive distinctions into
one generic response per group:

  AuthenticationFailedError  -> 401 "bad_credentials"
      IdentityNotFoundError, InvalidCredentialsError
      (merged so a caller cannot enumerate login ids)

  TokenError                 -> 401 "unauthorized"
      MalformedTokenError, InvalidSignatureError, TokenExpiredError

  AccessDeniedError          -> 403 "forbidden"
      carries the decision reason ("role_not_allowed", "voter_deny") for logs

DuplicateLoginIdError is surfaced distinctly (409) -- whether a login id is
taken is not a secret at sign-up time.

Messages on these exceptions are for logs. The API layer never copies them
into a response body except for input-validation errors, whose messages are
written to be client-safe.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Root of every error raised by auth/."""


# ---------------------------------------------------------------------------
# Input and hashing
# ---------------------------------------------------------------------------


class InvalidInputError(AuthError, ValueError):
    """An argument was empty or outside the accepted domain (e.g. empty plaintext)."""


class MalformedHashError(AuthError):
    """A stored password hash is not in the expected bcrypt format."""


class InvalidCredentialsFormatError(AuthError, ValueError):
    """Submitted credentials failed the local syntactic policy.

    Raised before any store lookup, so it never reveals whether a login id exists.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthenticationFailedError(AuthError):
    """Generic authentication failure. Subclasses are indistinguishable externally."""


class IdentityNotFoundError(AuthenticationFailedError):
    """No identity is stored under the submitted login id."""


class InvalidCredentialsError(AuthenticationFailedError):
    """The identity exists but the password does not match."""


class IdentityStoreUnavailableError(AuthError):
    """The identity store could not be reached or failed mid-query. Retryable."""


class DuplicateLoginIdError(AuthError):
    """An identity with this login id already exists."""

    def __init__(self, login_id: str) -> None:
        super().__init__(f"login id already taken: {login_id!r}")
        self.login_id = login_id


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class SigningError(AuthError):
    """The signing key is unavailable or the signer rejected the payload."""


class TokenError(AuthError):
    """Base for every reason a presented token is not valid."""


class MalformedTokenError(TokenError):
    pass


class InvalidSignatureError(TokenError):
    pass


class TokenExpiredError(TokenError):
    pass


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AccessDeniedError(AuthError):
    """An authorization decision came back Deny."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
