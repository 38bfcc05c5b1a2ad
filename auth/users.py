"""
auth/users.py -- UserService: authentication and identity lifecycle.

UserService orchestrates the leaf components. It receives every collaborator
through its constructor (store, hasher, validator) and holds no other state.

Enumeration resistance [C1]:
  authenticate() raises IdentityNotFoundError for an unknown login id and
  InvalidCredentialsError for a wrong password. Both derive from
  AuthenticationFailedError, which the HTTP layer renders as one response.
  The unknown-id path still runs a full bcrypt verify against a dummy hash,
  so response time does not reveal whether the login id exists either.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.errors import (
    IdentityNotFoundError,
    IdentityStoreUnavailableError,
    InvalidCredentialsError,
    InvalidInputError,
)
from auth.models import ALL_ROLES, PROFILE_FIELDS, Credentials, Principal, Role, StoredIdentity
from auth.passwords import PasswordHasher
from auth.store import IdentityStore
from auth.validation import CredentialValidator

logger = logging.getLogger("accessgate.auth.users")


class UserService:
    def __init__(self, store: IdentityStore, hasher: PasswordHasher, validator: CredentialValidator) -> None:
        self.store = store
        self.hasher = hasher
        self.validator = validator

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, credentials: Credentials) -> StoredIdentity:
        """Return the StoredIdentity the credentials prove, or raise.

        Raises:
            InvalidCredentialsFormatError: credentials fail the local policy (no lookup made).
            IdentityNotFoundError:         no identity under credentials.login_id.
            InvalidCredentialsError:       password does not match.
            IdentityStoreUnavailableError: the store lookup failed.
        """
        self.validator.validate(credentials)
        identity = self.store.find_by_login_id(credentials.login_id)
        if identity is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify_dummy(credentials.password)
            raise IdentityNotFoundError(credentials.login_id)
        if not self.hasher.verify(credentials.password, identity.password_hash):
            raise InvalidCredentialsError(credentials.login_id)

        if self.hasher.needs_rehash(identity.password_hash):
            try:
                upgraded = self.store.update(identity.id, password_hash=self.hasher.hash(credentials.password))
            except IdentityStoreUnavailableError:
                # The password is already proven; the upgrade is retried on the next login.
                logger.warning("Password hash upgrade failed (id=%s)", identity.id, exc_info=True)
                return identity
            if upgraded is not None:
                logger.info("Password hash upgraded to cost %d (id=%s)", self.hasher.rounds, identity.id)
                identity = upgraded
        return identity

    @staticmethod
    def to_principal(identity: StoredIdentity) -> Principal:
        """Reduce a stored identity to the claims a token may carry."""
        return Principal(subject_id=str(identity.id), role=identity.role)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def sign_up(
        self,
        credentials: Credentials,
        role: str = Role.user.value,
        profile: dict[str, Any] | None = None,
    ) -> StoredIdentity:
        """Create a new identity. Raises DuplicateLoginIdError if the login id is taken."""
        _check_role(role)
        self.validator.validate(credentials)
        identity = StoredIdentity(
            login_id=credentials.login_id,
            role=role,
            password_hash=self.hasher.hash(credentials.password),
            **_clean_profile(profile),
        )
        return self.store.create(identity)

    def get(self, identity_id: int) -> StoredIdentity:
        identity = self.store.get_by_id(identity_id)
        if identity is None:
            raise IdentityNotFoundError(str(identity_id))
        return identity

    def change_password(self, identity_id: int, current_password: str, new_password: str) -> None:
        """Replace the password after re-proving the current one."""
        identity = self.get(identity_id)
        self.validator.validate_password(new_password)
        if not self.hasher.verify(current_password, identity.password_hash):
            raise InvalidCredentialsError(identity.login_id)
        self.store.update(identity_id, password_hash=self.hasher.hash(new_password))
        logger.info("Password changed (id=%s)", identity_id)

    def change_role(self, identity_id: int, role: str) -> StoredIdentity:
        _check_role(role)
        updated = self.store.update(identity_id, role=role)
        if updated is None:
            raise IdentityNotFoundError(str(identity_id))
        logger.info("Role changed (id=%s, role=%s)", identity_id, role)
        return updated

    def update_profile(self, identity_id: int, fields: dict[str, Any]) -> StoredIdentity:
        updated = self.store.update(identity_id, **_clean_profile(fields))
        if updated is None:
            raise IdentityNotFoundError(str(identity_id))
        return updated


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_role(role: str) -> None:
    if role not in ALL_ROLES:
        raise InvalidInputError(f"Unknown role: {role!r}")


def _clean_profile(profile: dict[str, Any] | None) -> dict[str, Any]:
    if not profile:
        return {}
    unknown = set(profile) - set(PROFILE_FIELDS)
    if unknown:
        raise InvalidInputError(f"Unknown profile fields: {sorted(unknown)!r}")
    return dict(profile)
