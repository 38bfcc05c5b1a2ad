"""
auth/authorization.py -- Role allow-list plus ordered voters.

A RolePolicy is attached to each protected operation:

    RolePolicy(allowed_roles={"admin", "user"}, voters=(allow_roles("admin"), owner_only("user_id")))

decide() evaluates it in two layers:
  (a) coarse: the principal's role must be in allowed_roles, otherwise Deny
      with reason "role_not_allowed" and no voter runs;
  (b) fine: voters run in order, each returning ALLOW, DENY or ABSTAIN. The
      first non-abstain vote is the decision. If every voter abstains, the
      role check from (a) stands and the result is Allow.

Voters are plain functions (principal, context) -> Vote. They must not have
side effects. A voter that needs external state must turn a failed lookup
into ABSTAIN, never ALLOW -- owner_lookup() below does this for you.

The context is a read-only mapping of request attributes (path parameters in
the HTTP layer). Voters compare against it; they never fetch the request.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from auth.errors import AccessDeniedError
from auth.models import Principal, Role

logger = logging.getLogger("accessgate.auth.authorization")

_EMPTY_CONTEXT: Mapping[str, Any] = MappingProxyType({})


class Vote(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    ABSTAIN = "abstain"


Voter = Callable[[Principal, Mapping[str, Any]], Vote]


@dataclass(frozen=True)
class RolePolicy:
    """Allowed roles plus an ordered tuple of voters for one protected operation."""

    allowed_roles: frozenset[str]
    voters: tuple[Voter, ...] = ()

    def __init__(self, allowed_roles: Iterable[str], voters: Iterable[Voter] = ()) -> None:
        object.__setattr__(self, "allowed_roles", frozenset(allowed_roles))
        object.__setattr__(self, "voters", tuple(voters))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    voter: str | None = field(default=None, compare=False)

    def __bool__(self) -> bool:
        return self.allowed


class AuthorizationEngine:
    """Render Allow/Deny for a principal against a RolePolicy."""

    def decide(
        self,
        principal: Principal,
        policy: RolePolicy,
        context: Mapping[str, Any] | None = None,
    ) -> Decision:
        if principal.role not in policy.allowed_roles:
            return Decision(allowed=False, reason="role_not_allowed")

        ctx = MappingProxyType(dict(context)) if context else _EMPTY_CONTEXT
        for voter in policy.voters:
            vote = voter(principal, ctx)
            if vote is Vote.ABSTAIN:
                continue
            name = getattr(voter, "__name__", repr(voter))
            if vote is Vote.ALLOW:
                return Decision(allowed=True, reason="voter_allow", voter=name)
            return Decision(allowed=False, reason="voter_deny", voter=name)
        return Decision(allowed=True, reason="role_allowed")

    def enforce(
        self,
        principal: Principal,
        policy: RolePolicy,
        context: Mapping[str, Any] | None = None,
    ) -> Decision:
        """Like decide(), but raise AccessDeniedError on Deny."""
        decision = self.decide(principal, policy, context)
        if not decision.allowed:
            logger.info(
                "Access denied (subject=%s, role=%s, reason=%s, voter=%s)",
                principal.subject_id,
                principal.role,
                decision.reason,
                decision.voter,
            )
            raise AccessDeniedError(decision.reason)
        return decision


# ---------------------------------------------------------------------------
# Built-in voters
# ---------------------------------------------------------------------------


def allow_roles(*roles: str) -> Voter:
    """ALLOW when the principal holds one of roles, otherwise ABSTAIN."""
    granted = frozenset(roles)

    def voter(principal: Principal, context: Mapping[str, Any]) -> Vote:
        return Vote.ALLOW if principal.role in granted else Vote.ABSTAIN

    voter.__name__ = f"allow_roles({', '.join(sorted(granted))})"
    return voter


def basic_authorization(principal: Principal, context: Mapping[str, Any]) -> Vote:
    """Admins are always allowed; everyone else is left to the role check."""
    return Vote.ALLOW if principal.role == Role.admin.value else Vote.ABSTAIN


def _same_subject(value: Any, subject_id: str) -> bool:
    """Compare a resource owner id with a subject id, numerically when both are integers.

    "02" and "2" name the same record once the path is parsed, so they must
    match here too. Anything that is not an integer falls back to exact
    string equality.
    """
    try:
        return int(value) == int(subject_id)
    except (TypeError, ValueError):
        return str(value) == subject_id


def owner_only(key: str) -> Voter:
    """DENY unless context[key] names the principal itself.

    ABSTAIN when the context has no such key -- the operation is not about a
    specific record, so ownership has nothing to say.
    """

    def voter(principal: Principal, context: Mapping[str, Any]) -> Vote:
        if key not in context:
            return Vote.ABSTAIN
        return Vote.ABSTAIN if _same_subject(context[key], principal.subject_id) else Vote.DENY

    voter.__name__ = f"owner_only({key})"
    return voter


def owner_lookup(resolve_owner: Callable[[Any], str | None], key: str) -> Voter:
    """DENY unless resolve_owner(context[key]) is the principal.

    resolve_owner fetches the owning subject id of a resource (e.g. from a
    store). Any exception, or a None result, is treated as ABSTAIN.
    """

    def voter(principal: Principal, context: Mapping[str, Any]) -> Vote:
        if key not in context:
            return Vote.ABSTAIN
        try:
            owner = resolve_owner(context[key])
        except Exception:
            logger.warning("Owner lookup failed for %s=%r; abstaining", key, context[key], exc_info=True)
            return Vote.ABSTAIN
        if owner is None:
            return Vote.ABSTAIN
        return Vote.ABSTAIN if _same_subject(owner, principal.subject_id) else Vote.DENY

    voter.__name__ = f"owner_lookup({key})"
    return voter
