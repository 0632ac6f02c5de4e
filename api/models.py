"""
API request and response models for Keybound REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only bound sizes. The real validation rules (username syntax,
password length, key format) live in auth/ so every caller gets them, and
their failures come back through the AuthError handler rather than as 422s.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User
from auth.roles import display_name, user_role

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users."""

    email: str = Field(default="", max_length=512)
    username: str = Field(max_length=128)
    nickname: str = Field(default="", max_length=64)
    biography: str = Field(default="", max_length=2048)
    password: str = Field(max_length=256)
    session_secret: str = Field(max_length=1024, description="Hex-encoded PKIX DER EC public key.")


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/sessions. identity is a username or an email."""

    identity: str = Field(max_length=512)
    password: str = Field(max_length=256)
    session_secret: str = Field(max_length=1024, description="Hex-encoded PKIX DER EC public key.")


class ProfileUpdate(BaseModel):
    """Request body for POST /api/v1/me. Blank fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    nickname: str = Field(default="", max_length=64)
    biography: str = Field(default="", max_length=2048)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user -- no email, no credentials."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    nickname: str
    biography: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.user_id,
            username=user.username,
            nickname=display_name(user),
            biography=user.biography,
            created_at=user.created_at,
        )


class AccountResponse(UserResponse):
    """The caller's own account, including the session that authenticated it."""

    email: Optional[str] = None
    role: str
    session_id: str
    updated_at: str

    @classmethod
    def from_account(cls, user: User, operators: frozenset[str]) -> "AccountResponse":
        return cls(
            user_id=user.user_id,
            username=user.username,
            nickname=display_name(user),
            biography=user.biography,
            created_at=user.created_at,
            email=user.email,
            role=user_role(user, operators),
            session_id=user.session_id,
            updated_at=user.updated_at,
        )


class UserPageResponse(BaseModel):
    """One page of GET /api/v1/users.

    next_before and next_before_id are the created_at and user_id of the
    oldest user on this page -- pass them back as ?before=&before_id= to fetch
    the next page. Both are None when the page is empty.
    """

    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]
    next_before: Optional[str] = None
    next_before_id: Optional[str] = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    created_at: str
    current: bool


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

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
