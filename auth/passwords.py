"""
auth/passwords.py -- bcrypt password hashing with bounded concurrency.

Security design decisions:
  bcrypt (used directly, no passlib wrapper) is adaptive: the cost factor
  ("rounds") doubles the work per increment, so deployments can raise it as
  hardware gets faster. Every hash() call draws a fresh salt, which bcrypt
  embeds in the output -- two hashes of the same plaintext never match, and
  verify() recovers the salt from the stored string.

  bcrypt.checkpw() compares digests in constant time.

  bcrypt only reads the first 72 bytes of its input. Rather than let longer
  passwords be silently truncated, hash() rejects them outright; the
  credential validator enforces the same limit at the edge.

Concurrency:
  bcrypt is CPU-bound. A BoundedSemaphore caps how many hash/verify calls run
  at once per hasher; callers beyond the cap block until a slot frees up, so a
  login burst queues instead of saturating every core.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import re
import threading

import bcrypt

from auth.errors import InvalidInputError, MalformedHashError

logger = logging.getLogger("accessgate.auth.passwords")

BCRYPT_MAX_BYTES = 72

# $2b$12$<22-char salt><31-char digest>
_BCRYPT_RE = re.compile(r"^\$2[abxy]\$(\d{2})\$[./A-Za-z0-9]{53}$")


class PasswordHasher:
    """Hash and verify passwords.

    Usage:
        hasher = PasswordHasher(rounds=12, max_concurrent=4)
        stored = hasher.hash("correct horse battery staple")
        hasher.verify("correct horse battery staple", stored)  # True
    """

    def __init__(self, rounds: int = 12, max_concurrent: int = 4) -> None:
        if not 4 <= rounds <= 31:
            raise InvalidInputError("bcrypt rounds must be between 4 and 31")
        if max_concurrent < 1:
            raise InvalidInputError("max_concurrent must be at least 1")
        self.rounds = rounds
        self.max_concurrent = max_concurrent
        self._slots = threading.BoundedSemaphore(max_concurrent)
        # Timing equalization hash. Verified against when a login id is
        # unknown so that path costs the same as a wrong password.
        self._dummy_hash = self.hash(f"accessgate-timing-{rounds}")

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt hash of plaintext.

        Raises InvalidInputError if plaintext is empty or longer than 72 bytes.
        """
        if not plaintext:
            raise InvalidInputError("plaintext must not be empty")
        raw = plaintext.encode("utf-8")
        if len(raw) > BCRYPT_MAX_BYTES:
            raise InvalidInputError(f"plaintext must be at most {BCRYPT_MAX_BYTES} bytes")
        with self._slots:
            return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("ascii")

    def verify(self, plaintext: str, stored_hash: str) -> bool:
        """Return True if plaintext matches stored_hash.

        Never raises on a mismatch. Raises MalformedHashError if stored_hash is
        not a bcrypt string -- that is a data problem, not a wrong password.
        """
        if not isinstance(stored_hash, str) or _BCRYPT_RE.match(stored_hash) is None:
            raise MalformedHashError("stored hash is not a bcrypt hash")
        if not plaintext:
            return False
        raw = plaintext.encode("utf-8")
        if len(raw) > BCRYPT_MAX_BYTES:
            # hash() never accepts such input, so nothing stored can match it.
            return False
        with self._slots:
            try:
                return bcrypt.checkpw(raw, stored_hash.encode("ascii"))
            except ValueError as exc:
                raise MalformedHashError("stored hash could not be parsed") from exc

    def verify_dummy(self, plaintext: str) -> None:
        """Spend one verify() worth of CPU without a real hash. Result is discarded."""
        self.verify(plaintext or "x", self._dummy_hash)

    def needs_rehash(self, stored_hash: str) -> bool:
        """True when stored_hash was produced with a different cost than configured."""
        match = _BCRYPT_RE.match(stored_hash or "")
        if match is None:
            raise MalformedHashError("stored hash is not a bcrypt hash")
        return int(match.group(1)) != self.rounds
