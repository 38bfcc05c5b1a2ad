"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these types only own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Role vocabulary of the deployment. Tokens carry the plain string value."""

    admin = "admin"
    secretary = "secretary"
    director = "director"
    user = "user"


ALL_ROLES: frozenset[str] = frozenset(r.value for r in Role)

# Profile columns a caller may set at sign-up or change through a profile update.
PROFILE_FIELDS: tuple[str, ...] = (
    "given_names",
    "paternal_surname",
    "maternal_surname",
    "national_id",
    "phone",
    "email",
    "avatar",
)


@dataclass(frozen=True)
class Credentials:
    """Login id + plaintext password as submitted. Never persisted."""

    login_id: str
    password: str = field(repr=False)


@dataclass
class StoredIdentity:
    """An identity record as held by the identity store.

    password_hash is owned exclusively by this record (1:1) and is always a
    bcrypt string -- never the plaintext. id is None until the store assigns it.
    """

    login_id: str
    role: str
    password_hash: str = field(repr=False)
    id: int | None = None
    given_names: str | None = None
    paternal_surname: str | None = None
    maternal_surname: str | None = None
    national_id: str | None = None
    phone: str | None = None
    email: str | None = None
    avatar: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The token-safe projection of a StoredIdentity: who, and in which role."""

    subject_id: str
    role: str
