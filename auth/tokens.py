"""
auth/tokens.py -- Stateless JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256 by default. A token carries only the Principal
       (sub = subject id, role) plus iat/exp as integer epoch seconds. Nothing
       else from the identity record ever goes into a token.

  Signing material lives in TokenConfig, a frozen dataclass built once at
       startup and handed to TokenService. There is no module-level key; two
       services with different configs can coexist (tests rely on this).

  verify() checks in a fixed order and reports the first failure:
       1. structure  -- three segments, decodable header   -> MalformedTokenError
       2. signature  -- HMAC over header.payload, alg pinned -> InvalidSignatureError
       3. claims     -- sub/role/iat/exp present and typed  -> MalformedTokenError
       4. expiry     -- now > exp                           -> TokenExpiredError
       Signature is checked before the payload is parsed, so tampering with
       any byte of the signed segments is reported as a bad signature rather
       than leaking through as a different Principal or a parse error.

  Stateless by construction: the service keeps no per-token record. A token
       stays valid until exp; revocation is not supported.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jws, jwt
from jose.exceptions import JWSError

from auth.errors import (
    InvalidInputError,
    InvalidSignatureError,
    MalformedTokenError,
    SigningError,
    TokenExpiredError,
)
from auth.models import Principal

logger = logging.getLogger("accessgate.auth.tokens")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenConfig:
    """Process-wide signing configuration. Immutable once constructed."""

    secret: str = field(repr=False)
    algorithm: str = "HS256"
    default_ttl: timedelta = timedelta(hours=1)


class TokenService:
    """Issue and verify access tokens.

    Usage:
        service = TokenService(TokenConfig(secret=settings.secret_key))
        token = service.issue(Principal(subject_id="7", role="admin"))
        principal = service.verify(token)
    """

    def __init__(self, config: TokenConfig, clock: Clock = _utcnow) -> None:
        self.config = config
        self._clock = clock

    def issue(self, principal: Principal, ttl: timedelta | None = None) -> str:
        """Encode principal with iat=now and exp=now+ttl and sign it.

        ttl defaults to config.default_ttl. Raises SigningError if no signing
        key is configured or the signer rejects the payload.
        """
        ttl = self.config.default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise InvalidInputError("ttl must be positive")
        if not self.config.secret:
            raise SigningError("signing key is not configured")

        issued_at = int(self._clock().timestamp())
        claims = {
            "sub": principal.subject_id,
            "role": principal.role,
            "iat": issued_at,
            "exp": issued_at + int(ttl.total_seconds()),
        }
        try:
            return jwt.encode(claims, self.config.secret, algorithm=self.config.algorithm)
        except (JWSError, JWTError) as exc:
            raise SigningError("token signing failed") from exc

    def verify(self, token: str) -> Principal:
        """Return the Principal carried by token, or raise a TokenError subclass."""
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedTokenError("token must have three segments")
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedTokenError("token header is not decodable") from exc

        try:
            payload = jws.verify(token, self.config.secret, algorithms=[self.config.algorithm])
        except JWSError as exc:
            raise InvalidSignatureError("token signature verification failed") from exc

        claims = _parse_claims(payload)
        if self._clock().timestamp() > claims["exp"]:
            raise TokenExpiredError("token has expired")
        return Principal(subject_id=claims["sub"], role=claims["role"])

    def expires_in(self, ttl: timedelta | None = None) -> int:
        """Seconds a token issued now with ttl would stay valid (for response bodies)."""
        return int((self.config.default_ttl if ttl is None else ttl).total_seconds())


def _parse_claims(payload: bytes) -> dict[str, Any]:
    try:
        claims = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise MalformedTokenError("token payload is not JSON") from exc
    if not isinstance(claims, dict):
        raise MalformedTokenError("token payload is not an object")
    for name in ("sub", "role"):
        if not isinstance(claims.get(name), str) or not claims[name]:
            raise MalformedTokenError(f"token claim {name!r} missing or invalid")
    for name in ("iat", "exp"):
        value = claims.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedTokenError(f"token claim {name!r} missing or invalid")
    return claims
