"""Unit tests for auth/users.py -- UserService.

Covers:
- authenticate(): success, unknown login id, wrong password, malformed input
- unknown-id path still runs a bcrypt verify (timing equalization)
- to_principal() keeps only subject id and role
- sign_up(): hashing, default role, profile fields, duplicates, unknown role
- change_password() / change_role() / update_profile()
- transparent rehash when the configured cost changes, and a failed rehash
  write does not block a proven login
- store failures on lookup propagate as IdentityStoreUnavailableError
"""

import pytest

from auth.errors import (
    AuthenticationFailedError,
    DuplicateLoginIdError,
    IdentityNotFoundError,
    IdentityStoreUnavailableError,
    InvalidCredentialsError,
    InvalidCredentialsFormatError,
    InvalidInputError,
)
from auth.models import Credentials, Principal, StoredIdentity
from auth.passwords import PasswordHasher
from auth.store import SqlIdentityStore
from auth.users import UserService
from auth.validation import CredentialValidator


@pytest.fixture
def users(store: SqlIdentityStore, hasher: PasswordHasher, validator: CredentialValidator) -> UserService:
    return UserService(store, hasher, validator)


@pytest.fixture
def ana(users: UserService) -> StoredIdentity:
    return users.sign_up(Credentials("ana", "ana-password"), profile={"given_names": "Ana"})


class TestAuthenticate:
    def test_success(self, users: UserService, ana: StoredIdentity) -> None:
        """Correct login id and password must return the stored identity."""
        identity = users.authenticate(Credentials("ana", "ana-password"))
        assert identity.id == ana.id

    def test_unknown_login_id(self, users: UserService) -> None:
        """A login id with no stored identity must raise IdentityNotFoundError."""
        with pytest.raises(IdentityNotFoundError):
            users.authenticate(Credentials("ghost", "whatever-pass"))

    def test_wrong_password(self, users: UserService, ana: StoredIdentity) -> None:
        """A known login id with the wrong password must raise InvalidCredentialsError."""
        with pytest.raises(InvalidCredentialsError):
            users.authenticate(Credentials("ana", "not-the-password"))

    def test_both_failures_share_a_base(self, users: UserService, ana: StoredIdentity) -> None:
        """The boundary catches one type for both -- neither leaks which case happened."""
        for creds in (Credentials("ghost", "whatever-pass"), Credentials("ana", "not-the-password")):
            with pytest.raises(AuthenticationFailedError):
                users.authenticate(creds)

    def test_unknown_login_id_still_runs_bcrypt(
        self, users: UserService, hasher: PasswordHasher, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An unknown login id must still cost one bcrypt verify."""
        calls = []
        original = hasher.verify

        def spy(plaintext: str, stored_hash: str) -> bool:
            calls.append(stored_hash)
            return original(plaintext, stored_hash)

        monkeypatch.setattr(hasher, "verify", spy)
        with pytest.raises(IdentityNotFoundError):
            users.authenticate(Credentials("ghost", "whatever-pass"))
        assert len(calls) == 1

    def test_malformed_credentials_skip_lookup(
        self, users: UserService, store: SqlIdentityStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Credentials failing the local policy must be rejected before the store is queried."""

        def fail(*args, **kwargs):
            raise AssertionError("store must not be queried")

        monkeypatch.setattr(store, "find_by_login_id", fail)
        with pytest.raises(InvalidCredentialsFormatError):
            users.authenticate(Credentials("a", "x"))

    def test_store_unavailable_propagates(
        self, users: UserService, store: SqlIdentityStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failed lookup must surface as IdentityStoreUnavailableError, not an auth failure."""

        def down(login_id: str):
            raise IdentityStoreUnavailableError("down")

        monkeypatch.setattr(store, "find_by_login_id", down)
        with pytest.raises(IdentityStoreUnavailableError):
            users.authenticate(Credentials("ana", "ana-password"))

    def test_rehash_on_cost_change(self, store: SqlIdentityStore, validator: CredentialValidator) -> None:
        """A hash stored at an old cost must be replaced by one at the configured cost."""
        weak = UserService(store, PasswordHasher(rounds=4), validator)
        created = weak.sign_up(Credentials("legacy", "legacy-password"))
        assert created.password_hash.startswith("$2b$04$")

        stronger = UserService(store, PasswordHasher(rounds=5), validator)
        identity = stronger.authenticate(Credentials("legacy", "legacy-password"))
        assert identity.password_hash.startswith("$2b$05$")
        assert store.get_by_id(created.id).password_hash == identity.password_hash
        # Still verifies with the new hash.
        stronger.authenticate(Credentials("legacy", "legacy-password"))

    def test_rehash_write_failure_still_authenticates(
        self, store: SqlIdentityStore, validator: CredentialValidator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A store outage while upgrading the hash must not reject a correct password."""
        created = UserService(store, PasswordHasher(rounds=4), validator).sign_up(
            Credentials("legacy", "legacy-password")
        )

        def write_failed(*args, **kwargs):
            raise IdentityStoreUnavailableError("write failed")

        monkeypatch.setattr(store, "update", write_failed)
        stronger = UserService(store, PasswordHasher(rounds=5), validator)
        identity = stronger.authenticate(Credentials("legacy", "legacy-password"))
        assert identity.id == created.id
        assert identity.password_hash == created.password_hash


class TestToPrincipal:
    def test_projection(self, users: UserService, ana: StoredIdentity) -> None:
        """The principal must carry only the subject id (as a string) and the role."""
        assert users.to_principal(ana) == Principal(subject_id=str(ana.id), role="user")


class TestSignUp:
    def test_password_is_hashed(self, users: UserService, hasher: PasswordHasher, ana: StoredIdentity) -> None:
        """The stored hash must differ from the plaintext and verify against it."""
        assert ana.password_hash != "ana-password"
        assert hasher.verify("ana-password", ana.password_hash)

    def test_default_role_and_profile(self, ana: StoredIdentity) -> None:
        """Sign-up without a role must store "user" along with the given profile fields."""
        assert ana.role == "user"
        assert ana.given_names == "Ana"

    def test_explicit_role(self, users: UserService) -> None:
        """An explicit known role must be stored as given."""
        assert users.sign_up(Credentials("boss", "boss-password"), role="director").role == "director"

    def test_duplicate(self, users: UserService, ana: StoredIdentity) -> None:
        """A second sign-up with the same login id must raise DuplicateLoginIdError."""
        with pytest.raises(DuplicateLoginIdError):
            users.sign_up(Credentials("ana", "another-password"))

    def test_unknown_role(self, users: UserService) -> None:
        """A role outside the vocabulary must raise InvalidInputError."""
        with pytest.raises(InvalidInputError):
            users.sign_up(Credentials("eve", "eve-password"), role="superuser")

    def test_unknown_profile_field(self, users: UserService) -> None:
        """Profile keys that are not profile columns (e.g. role) must be rejected."""
        with pytest.raises(InvalidInputError):
            users.sign_up(Credentials("eve", "eve-password"), profile={"role": "admin"})

    def test_invalid_format(self, users: UserService) -> None:
        """A password below the minimum length must raise InvalidCredentialsFormatError."""
        with pytest.raises(InvalidCredentialsFormatError):
            users.sign_up(Credentials("eve", "short"))


class TestLifecycle:
    def test_change_password(self, users: UserService, ana: StoredIdentity) -> None:
        """After a change the new password must work and the old one must fail."""
        users.change_password(ana.id, "ana-password", "brand-new-password")
        users.authenticate(Credentials("ana", "brand-new-password"))
        with pytest.raises(InvalidCredentialsError):
            users.authenticate(Credentials("ana", "ana-password"))

    def test_change_password_requires_current(self, users: UserService, ana: StoredIdentity) -> None:
        """A wrong current password must raise InvalidCredentialsError."""
        with pytest.raises(InvalidCredentialsError):
            users.change_password(ana.id, "wrong-current", "brand-new-password")

    def test_change_password_enforces_policy(self, users: UserService, ana: StoredIdentity) -> None:
        """The new password must satisfy the same policy as at sign-up."""
        with pytest.raises(InvalidCredentialsFormatError):
            users.change_password(ana.id, "ana-password", "short")

    def test_change_role(self, users: UserService, ana: StoredIdentity) -> None:
        """change_role() must return the identity with the new role."""
        assert users.change_role(ana.id, "secretary").role == "secretary"

    def test_change_role_unknown(self, users: UserService, ana: StoredIdentity) -> None:
        """A role outside the vocabulary must raise InvalidInputError."""
        with pytest.raises(InvalidInputError):
            users.change_role(ana.id, "emperor")

    def test_change_role_missing_identity(self, users: UserService) -> None:
        """Changing the role of a non-existent id must raise IdentityNotFoundError."""
        with pytest.raises(IdentityNotFoundError):
            users.change_role(999, "admin")

    def test_update_profile(self, users: UserService, ana: StoredIdentity) -> None:
        """Profile updates must write the given fields and leave the role alone."""
        updated = users.update_profile(ana.id, {"email": "ana@example.org", "given_names": "Ana María"})
        assert updated.email == "ana@example.org"
        assert updated.given_names == "Ana María"
        assert updated.role == "user"
