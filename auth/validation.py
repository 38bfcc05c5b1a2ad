"""
auth/validation.py -- Syntactic credential policy.

CredentialValidator runs before any lookup or hashing. It is pure: no I/O, no
clock, no store access. A malformed login id is rejected the same way whether
or not an identity with a similar id exists, so validation never hints at what
a lookup would have found.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re

from auth.errors import InvalidCredentialsFormatError
from auth.models import Credentials
from auth.passwords import BCRYPT_MAX_BYTES

LOGIN_ID_MAX_LENGTH = 255
_LOGIN_ID_RE = re.compile(r"^[A-Za-z0-9._@+-]+$")


class CredentialValidator:
    """Check a login id / password pair against the configured policy.

    Args:
        min_login_length:      Shortest accepted login id.
        min_password_length:   Shortest accepted password (in characters).
        require_mixed_classes: When True, passwords must draw from at least three
                               of: lowercase, uppercase, digits, symbols.
    """

    def __init__(
        self,
        min_login_length: int = 3,
        min_password_length: int = 8,
        require_mixed_classes: bool = False,
    ) -> None:
        self.min_login_length = min_login_length
        self.min_password_length = min_password_length
        self.require_mixed_classes = require_mixed_classes

    def validate(self, credentials: Credentials) -> None:
        """Raise InvalidCredentialsFormatError if either field breaks the policy."""
        self.validate_login_id(credentials.login_id)
        self.validate_password(credentials.password)

    def validate_login_id(self, login_id: str) -> None:
        if not isinstance(login_id, str) or len(login_id) < self.min_login_length:
            raise InvalidCredentialsFormatError(
                "login_id", f"Login id must be at least {self.min_login_length} characters."
            )
        if len(login_id) > LOGIN_ID_MAX_LENGTH:
            raise InvalidCredentialsFormatError(
                "login_id", f"Login id must be at most {LOGIN_ID_MAX_LENGTH} characters."
            )
        if _LOGIN_ID_RE.match(login_id) is None:
            raise InvalidCredentialsFormatError(
                "login_id", "Login id may only contain letters, digits and . _ @ + -"
            )

    def validate_password(self, password: str) -> None:
        if not isinstance(password, str) or len(password) < self.min_password_length:
            raise InvalidCredentialsFormatError(
                "password", f"Password must be at least {self.min_password_length} characters."
            )
        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise InvalidCredentialsFormatError("password", f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
        if self.require_mixed_classes and _character_classes(password) < 3:
            raise InvalidCredentialsFormatError(
                "password",
                "Password must mix at least three of: lowercase, uppercase, digits, symbols.",
            )


def _character_classes(password: str) -> int:
    classes = [
        any(c.islower() for c in password),
        any(c.isupper() for c in password),
        any(c.isdigit() for c in password),
        any(not c.isalnum() for c in password),
    ]
    return sum(classes)
