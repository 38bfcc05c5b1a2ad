"""
auth/services.py -- Assemble the auth collaborators from Settings.

build_auth_services() is called once, by the application lifespan (or the
CLI), and the resulting AuthServices bundle is handed to whoever needs it.
Nothing in auth/ looks services up globally; this is the only place that
knows how the pieces fit together.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from auth.authorization import AuthorizationEngine
from auth.passwords import PasswordHasher
from auth.store import IdentityStore, SqlIdentityStore
from auth.tokens import TokenConfig, TokenService
from auth.users import UserService
from auth.validation import CredentialValidator
from core.config import Settings


@dataclass(frozen=True)
class AuthServices:
    store: IdentityStore
    hasher: PasswordHasher
    validator: CredentialValidator
    tokens: TokenService
    users: UserService
    authorization: AuthorizationEngine


def build_auth_services(settings: Settings, store: IdentityStore | None = None) -> AuthServices:
    """Build every auth collaborator from settings.

    Pass store to reuse an existing identity store (tests pass an in-memory
    one); otherwise a SqlIdentityStore is opened at settings.database_url.
    """
    if store is None:
        store = SqlIdentityStore(settings.database_url)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, max_concurrent=settings.max_concurrent_hashes)
    validator = CredentialValidator(
        min_login_length=settings.min_login_length,
        min_password_length=settings.min_password_length,
        require_mixed_classes=settings.require_mixed_password,
    )
    tokens = TokenService(
        TokenConfig(
            secret=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            default_ttl=timedelta(seconds=settings.token_expire_seconds),
        )
    )
    return AuthServices(
        store=store,
        hasher=hasher,
        validator=validator,
        tokens=tokens,
        users=UserService(store, hasher, validator),
        authorization=AuthorizationEngine(),
    )
