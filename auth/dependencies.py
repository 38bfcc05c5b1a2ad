"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Tokens are read from the standard "Authorization: Bearer <token>" header only.

get_current_principal() verifies the token and returns the Principal it
carries. It raises TokenError subclasses; api/main.py renders every one of
them (including a missing header) as the same 401 "unauthorized" response.

require_policy(policy) wraps get_current_principal() and runs the
AuthorizationEngine with the request's path parameters as voter context. A
Deny raises AccessDeniedError, rendered as 403 "forbidden".

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.authorization import RolePolicy
from auth.errors import MalformedTokenError
from auth.models import Principal
from auth.services import AuthServices


def get_auth_services(request: Request) -> AuthServices:
    """Return the AuthServices bundle built by the application lifespan."""
    return request.app.state.auth


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise MalformedTokenError("bearer token missing")
    return token.strip()


def get_current_principal(
    request: Request,
    services: AuthServices = Depends(get_auth_services),
) -> Principal:
    """Require a valid bearer token. Returns the Principal it carries.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    return services.tokens.verify(_bearer_token(request))


def require_policy(policy: RolePolicy) -> Callable[..., Principal]:
    """Return a dependency enforcing policy for the current request.

    Use as a FastAPI dependency:
        ADMIN_ONLY = RolePolicy({"admin"}, [basic_authorization])

        @router.get("/admin-only")
        async def route(principal: Principal = Depends(require_policy(ADMIN_ONLY))): ...
    """

    def _dep(
        request: Request,
        principal: Principal = Depends(get_current_principal),
        services: AuthServices = Depends(get_auth_services),
    ) -> Principal:
        services.authorization.enforce(principal, policy, request.path_params)
        return principal

    return _dep
