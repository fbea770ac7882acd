"""
API request and response models for FollowGraph REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in users/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from users.models import FollowCounts, FollowSummary, UserRecord

# ---------------------------------------------------------------------------
# Shared envelopes
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

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ActionResult(BaseModel):
    """Generic success body for mutations that return no resource."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=64)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    user_id: str
    email: str
    role: str


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register. Always creates a "user" role."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    full_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=64)


class MeResponse(BaseModel):
    user_id: str
    role: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class SocialLinksModel(BaseModel):
    twitter: Optional[str] = Field(default=None, max_length=500)
    linkedin: Optional[str] = Field(default=None, max_length=500)
    github: Optional[str] = Field(default=None, max_length=500)
    website: Optional[str] = Field(default=None, max_length=500)


class PreferencesModel(BaseModel):
    email_notifications: bool = True
    marketing_updates: bool = False
    two_factor_auth: bool = False


class UserUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{user_id}. Only sent fields change."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    avatar: Optional[str] = Field(default=None, max_length=2048)
    bio: Optional[str] = Field(default=None, max_length=1000)
    social_links: Optional[SocialLinksModel] = None
    preferences: Optional[PreferencesModel] = None


class UserResponse(BaseModel):
    """Profile view of a user. Edge sets are exposed only as counts elsewhere."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    full_name: str
    role: str
    avatar: Optional[str]
    bio: str
    social_links: SocialLinksModel
    preferences: PreferencesModel
    created_at: str
    updated_at: str

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            avatar=user.avatar,
            bio=user.bio,
            social_links=SocialLinksModel(**vars(user.social_links)),
            preferences=PreferencesModel(**vars(user.preferences)),
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class FollowUserRow(BaseModel):
    """One row in a followers / following list."""

    model_config = ConfigDict(frozen=True)

    id: str
    full_name: str
    avatar: Optional[str]

    @classmethod
    def from_summary(cls, summary: FollowSummary) -> "FollowUserRow":
        return cls(id=summary.id, full_name=summary.full_name, avatar=summary.avatar)


class FollowCountsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    follower_count: int
    following_count: int

    @classmethod
    def from_counts(cls, counts: FollowCounts) -> "FollowCountsResponse":
        return cls(follower_count=counts.follower_count, following_count=counts.following_count)


class FollowStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_id: str
    is_following: bool


class ProfileResponse(BaseModel):
    """GET /users/profile/{user_id} -- profile plus follow counts."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    follow_counts: FollowCountsResponse
