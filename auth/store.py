"""
auth/store.py -- Identity store contract and its SQLAlchemy Core implementation.

Pattern: Repository + Data Mapper.
IdentityStore is the contract the core consumes; SqlIdentityStore is the
repository and _row_to_identity the mapper. Service and route code never
touches SQL directly.

Error translation (the only place SQLAlchemy exceptions are caught):
  IntegrityError on insert/update of login_id -> DuplicateLoginIdError
  any other SQLAlchemyError                   -> IdentityStoreUnavailableError
No retries happen here; the caller decides.

Security:
  All queries use bound parameters. No f-strings in SQL.
  login_id is UNIQUE at the schema level, so two concurrent sign-ups with the
  same id cannot both succeed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateLoginIdError, IdentityStoreUnavailableError, InvalidInputError
from auth.models import PROFILE_FIELDS, StoredIdentity

logger = logging.getLogger("accessgate.auth.store")

_DEFAULT_DB_URL = "sqlite:///accessgate.db"

# Columns update() accepts. id, login_id and created_at are immutable.
_MUTABLE_FIELDS: frozenset[str] = frozenset({"role", "password_hash", *PROFILE_FIELDS})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("login_id", String(255), nullable=False, unique=True),
    Column("password_hash", String(60), nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("given_names", String(255)),
    Column("paternal_surname", String(255)),
    Column("maternal_surname", String(255)),
    Column("national_id", String(64)),
    Column("phone", String(32)),
    Column("email", String(255)),
    Column("avatar", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class IdentityStore(Protocol):
    """What UserService needs from persistence. Implementations must be thread-safe."""

    def find_by_login_id(self, login_id: str) -> StoredIdentity | None: ...

    def get_by_id(self, identity_id: int) -> StoredIdentity | None: ...

    def create(self, identity: StoredIdentity) -> StoredIdentity: ...

    def update(self, identity_id: int, **fields: Any) -> StoredIdentity | None: ...

    def list_identities(self, role: str | None = None) -> list[StoredIdentity]: ...

    def count(self, role: str | None = None) -> int: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlIdentityStore:
    """SQLAlchemy Core repository for StoredIdentity records.

    Usage:
        store = SqlIdentityStore("sqlite:///accessgate.db")
        created = store.create(StoredIdentity(login_id="ana", role="user", password_hash=h))
        store.find_by_login_id("ana")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        try:
            _metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise IdentityStoreUnavailableError("could not initialize identity schema") from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_login_id(self, login_id: str) -> StoredIdentity | None:
        """Exact, case-sensitive lookup. Returns None if not found."""
        row = self._fetch_one(select(_identities).where(_identities.c.login_id == login_id))
        return _row_to_identity(row) if row is not None else None

    def get_by_id(self, identity_id: int) -> StoredIdentity | None:
        row = self._fetch_one(select(_identities).where(_identities.c.id == identity_id))
        return _row_to_identity(row) if row is not None else None

    def list_identities(self, role: str | None = None) -> list[StoredIdentity]:
        """Return identities ordered by id, optionally filtered by role."""
        stmt = select(_identities).order_by(_identities.c.id)
        if role is not None:
            stmt = stmt.where(_identities.c.role == role)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as exc:
            raise IdentityStoreUnavailableError("identity listing failed") from exc
        return [_row_to_identity(r) for r in rows]

    def count(self, role: str | None = None) -> int:
        stmt = select(func.count()).select_from(_identities)
        if role is not None:
            stmt = stmt.where(_identities.c.role == role)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(stmt).scalar()
        except SQLAlchemyError as exc:
            raise IdentityStoreUnavailableError("identity count failed") from exc
        return result or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, identity: StoredIdentity) -> StoredIdentity:
        """Insert identity and return the stored record with id and timestamps set.

        Raises DuplicateLoginIdError if login_id is already taken.
        """
        now = _now_iso()
        values = {name: getattr(identity, name) for name in PROFILE_FIELDS}
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _identities.insert().values(
                        login_id=identity.login_id,
                        password_hash=identity.password_hash,
                        role=identity.role,
                        created_at=now,
                        updated_at=now,
                        **values,
                    )
                )
                conn.commit()
                new_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateLoginIdError(identity.login_id) from exc
        except SQLAlchemyError as exc:
            raise IdentityStoreUnavailableError("identity insert failed") from exc
        logger.info("Identity created (id=%s, role=%s)", new_id, identity.role)
        created = self.get_by_id(new_id)
        if created is None:
            raise IdentityStoreUnavailableError("identity vanished after insert")
        return created

    def update(self, identity_id: int, **fields: Any) -> StoredIdentity | None:
        """Update mutable fields and return the fresh record, or None if id is unknown.

        Only role, password_hash and the profile columns are accepted. Unknown
        keys raise InvalidInputError rather than being silently ignored.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown identity fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_by_id(identity_id)
        fields["updated_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_identities.update().where(_identities.c.id == identity_id).values(**fields))
                conn.commit()
        except SQLAlchemyError as exc:
            raise IdentityStoreUnavailableError("identity update failed") from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(identity_id)

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch_one(self, stmt):
        try:
            with self.engine.connect() as conn:
                return conn.execute(stmt).fetchone()
        except SQLAlchemyError as exc:
            raise IdentityStoreUnavailableError("identity lookup failed") from exc


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> StoredIdentity:
    return StoredIdentity(
        id=row.id,
        login_id=row.login_id,
        password_hash=row.password_hash,
        role=row.role,
        given_names=row.given_names,
        paternal_surname=row.paternal_surname,
        maternal_surname=row.maternal_surname,
        national_id=row.national_id,
        phone=row.phone,
        email=row.email,
        avatar=row.avatar,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
