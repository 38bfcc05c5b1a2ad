"""
api/routes/v1/auth.py -- Login, sign-up and current-user endpoints.

Routes:
  POST /api/v1/auth/login          -- password login; returns a bearer token
  POST /api/v1/auth/sign-up        -- self-registration with role "user"
  POST /api/v1/auth/sign-up/admin  -- create an admin account (admin only)
  GET  /api/v1/auth/me             -- current user record (requires auth)

Security:
  [H2] POST /login and POST /sign-up are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] UserService.authenticate() equalizes timing for unknown login ids and
       raises AuthenticationFailedError subclasses. api/main.py renders both
       subclasses as the same 401 "bad_credentials" -- never catch them here.
  [M5] Cache-Control: no-store on login responses.
  bcrypt work runs in the Starlette thread pool so the event loop keeps
  serving other requests. If the request is cancelled while that work is in
  flight, the await raises and no token is issued.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, LoginResponse, SignUpRequest, UserResponse
from api.policies import ADMIN_ONLY, AUTHENTICATED
from auth.dependencies import get_auth_services, require_policy
from auth.errors import IdentityNotFoundError
from auth.models import Credentials, Principal, Role
from auth.services import AuthServices
from core.config import get_settings

logger = logging.getLogger("accessgate.api.auth")

# Auth policy:
# - POST /api/v1/auth/login:          public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/sign-up:        public -- unless SELF_REGISTRATION_ENABLED=false
# - POST /api/v1/auth/sign-up/admin:  ADMIN_ONLY
# - GET  /api/v1/auth/me:             AUTHENTICATED
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)  # [H2] must sit BELOW @router so the registered endpoint is the limited one
async def login(
    request: Request,
    body: LoginRequest,
    services: AuthServices = Depends(get_auth_services),
) -> JSONResponse:
    """Authenticate with login id and password; return a signed access token."""
    credentials = Credentials(login_id=body.login_id, password=body.password)
    identity = await run_in_threadpool(services.users.authenticate, credentials)

    principal = services.users.to_principal(identity)
    token = services.tokens.issue(principal)
    logger.info("Login succeeded (id=%s, role=%s)", identity.id, identity.role)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=services.tokens.expires_in(),
            user=UserResponse.from_identity(identity),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/sign-up", response_model=UserResponse, status_code=201)
@limiter.limit(login_rate_limit)  # [H2]
async def sign_up(
    request: Request,
    body: SignUpRequest,
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    """Register a new account with the default "user" role.

    The role is fixed server-side. A duplicate login id returns 409.
    """
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    return await _create_account(services, body, Role.user.value)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up/admin", response_model=UserResponse, status_code=201)
async def sign_up_admin(
    body: SignUpRequest,
    principal: Principal = Depends(require_policy(ADMIN_ONLY)),
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    """Create an account with the "admin" role. Admin only."""
    created = await _create_account(services, body, Role.admin.value)
    logger.info("Admin account created (id=%s, by=%s)", created.id, principal.subject_id)
    return created


@router.get("/auth/me", response_model=UserResponse)
async def me(
    principal: Principal = Depends(require_policy(AUTHENTICATED)),
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    """Return the stored record behind the current token.

    The identity may have been removed after the token was issued; that is a
    404, not a token failure.
    """
    try:
        identity = await run_in_threadpool(services.users.get, int(principal.subject_id))
    except (IdentityNotFoundError, ValueError) as exc:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        ) from exc
    return UserResponse.from_identity(identity)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _create_account(services: AuthServices, body: SignUpRequest, role: str) -> UserResponse:
    credentials = Credentials(login_id=body.login_id, password=body.password)
    profile = body.model_dump(exclude={"login_id", "password"}, exclude_none=True)
    identity = await run_in_threadpool(services.users.sign_up, credentials, role, profile)
    return UserResponse.from_identity(identity)
