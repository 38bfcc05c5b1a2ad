"""
api/routes/v1/users.py -- User record endpoints.

Routes:
  GET   /api/v1/users/count              -- number of users, optional ?role= (admin only)
  GET   /api/v1/users                    -- list users, optional ?role= (admin only)
  GET   /api/v1/users/{user_id}          -- one user (admin, or the user themself)
  PATCH /api/v1/users/{user_id}          -- update profile fields (admin, or self)
  PUT   /api/v1/users/{user_id}/password -- change password (self only, re-proves current)
  PUT   /api/v1/users/{user_id}/role     -- change role (admin only)

Every route declares its RolePolicy through require_policy(); the owner check
for {user_id} routes is the owner_only voter in api/policies.py, so no handler
compares ids itself.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from starlette.concurrency import run_in_threadpool

from api.models import CountResponse, PasswordChange, RoleChange, UserPatch, UserResponse
from api.policies import ADMIN_ONLY, ADMIN_OR_SELF, SELF_ONLY
from auth.dependencies import get_auth_services, require_policy
from auth.errors import IdentityNotFoundError
from auth.models import Principal, Role
from auth.services import AuthServices

# Auth policy:
# - GET   /api/v1/users/count:              ADMIN_ONLY
# - GET   /api/v1/users:                    ADMIN_ONLY
# - GET   /api/v1/users/{user_id}:          ADMIN_OR_SELF
# - PATCH /api/v1/users/{user_id}:          ADMIN_OR_SELF
# - PUT   /api/v1/users/{user_id}/password: SELF_ONLY
# - PUT   /api/v1/users/{user_id}/role:     ADMIN_ONLY
router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "User not found."},
    )


@router.get("/users/count", response_model=CountResponse)
async def count_users(
    role: Optional[Role] = None,
    principal: Principal = Depends(require_policy(ADMIN_ONLY)),
    services: AuthServices = Depends(get_auth_services),
) -> CountResponse:
    total = await run_in_threadpool(services.store.count, role.value if role else None)
    return CountResponse(count=total)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    role: Optional[Role] = None,
    principal: Principal = Depends(require_policy(ADMIN_ONLY)),
    services: AuthServices = Depends(get_auth_services),
) -> list[UserResponse]:
    identities = await run_in_threadpool(services.store.list_identities, role.value if role else None)
    return [UserResponse.from_identity(i) for i in identities]


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    principal: Principal = Depends(require_policy(ADMIN_OR_SELF)),
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    try:
        identity = await run_in_threadpool(services.users.get, user_id)
    except IdentityNotFoundError as exc:
        raise _not_found() from exc
    return UserResponse.from_identity(identity)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    body: UserPatch,
    principal: Principal = Depends(require_policy(ADMIN_OR_SELF)),
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    """Update profile fields. Only fields present in the body are written."""
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    try:
        identity = await run_in_threadpool(services.users.update_profile, user_id, fields)
    except IdentityNotFoundError as exc:
        raise _not_found() from exc
    return UserResponse.from_identity(identity)


@router.put("/users/{user_id}/password", status_code=204)
async def change_password(
    user_id: int,
    body: PasswordChange,
    principal: Principal = Depends(require_policy(SELF_ONLY)),
    services: AuthServices = Depends(get_auth_services),
) -> Response:
    """Change the caller's own password.

    A wrong current password surfaces as 401 "bad_credentials", the same as a
    failed login. Tokens issued before the change stay valid until they expire.
    """
    await run_in_threadpool(
        services.users.change_password,
        user_id,
        body.current_password,
        body.new_password,
    )
    return Response(status_code=204)


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: int,
    body: RoleChange,
    principal: Principal = Depends(require_policy(ADMIN_ONLY)),
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    """Change a user's role. Takes effect at the user's next login."""
    if str(user_id) == principal.subject_id and body.role is not Role.admin:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_demotion", "message": "You cannot remove your own admin role."},
        )
    try:
        identity = await run_in_threadpool(services.users.change_role, user_id, body.role.value)
    except IdentityNotFoundError as exc:
        raise _not_found() from exc
    return UserResponse.from_identity(identity)
