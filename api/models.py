"""
API request and response models for AccessGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only enforce shape and hard size caps. The credential policy
(minimum lengths, character set) lives in auth.validation.CredentialValidator
so the HTTP layer and the CLI apply exactly the same rules.

Response models never carry password_hash.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Role, StoredIdentity

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    login_id: str = Field(max_length=255)
    password: str = Field(max_length=255)


class ProfileFields(BaseModel):
    """Optional profile columns shared by sign-up and profile updates."""

    model_config = ConfigDict(str_strip_whitespace=True)

    given_names: Optional[str] = Field(default=None, max_length=255)
    paternal_surname: Optional[str] = Field(default=None, max_length=255)
    maternal_surname: Optional[str] = Field(default=None, max_length=255)
    national_id: Optional[str] = Field(default=None, max_length=64)
    phone: Optional[str] = Field(default=None, max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)
    avatar: Optional[str] = Field(default=None, max_length=2048)


class SignUpRequest(ProfileFields):
    """Request body for POST /api/v1/auth/sign-up and /auth/sign-up/admin.

    Any role sent by the client is ignored -- the endpoint decides the role.
    """

    login_id: str = Field(max_length=255)
    password: str = Field(max_length=255)


class UserPatch(ProfileFields):
    """Request body for PATCH /api/v1/users/{user_id}. Only set fields are written."""


class PasswordChange(BaseModel):
    """Request body for PUT /api/v1/users/{user_id}/password."""

    current_password: str = Field(max_length=255)
    new_password: str = Field(max_length=255)


class RoleChange(BaseModel):
    """Request body for PUT /api/v1/users/{user_id}/role."""

    role: Role


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    id: int
    login_id: str
    role: str
    given_names: Optional[str] = None
    paternal_surname: Optional[str] = None
    maternal_surname: Optional[str] = None
    national_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_identity(cls, identity: StoredIdentity) -> "UserResponse":
        return cls(
            id=identity.id,
            login_id=identity.login_id,
            role=identity.role,
            given_names=identity.given_names,
            paternal_surname=identity.paternal_surname,
            maternal_surname=identity.maternal_surname,
            national_id=identity.national_id,
            phone=identity.phone,
            email=identity.email,
            avatar=identity.avatar,
            created_at=identity.created_at or "",
            updated_at=identity.updated_at or "",
        )


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class CountResponse(BaseModel):
    """Response for GET /api/v1/users/count."""

    count: int
