from pydantic import EmailStr, Field, field_serializer, field_validator
from typing import Optional
from datetime import datetime

from app.schemas.base import CamelModel, as_utc


class RegisterRequest(CamelModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    username: Optional[str] = Field(default=None, min_length=2, max_length=50)

    @field_validator("name", "username")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if value is not None else value


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    username: Optional[str] = Field(default=None, min_length=2, max_length=50)
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar: Optional[str] = None


class PasswordChange(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str


class UserResponse(CamelModel):
    id: int
    name: str
    email: str
    username: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    plan: str
    initials: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @field_serializer("created_at", "last_login")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            username=user.username,
            avatar=user.avatar,
            bio=user.bio,
            plan=user.plan_tier,
            initials=user.initials,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class PublicOwnerSummary(CamelModel):
    name: str
    username: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    initials: str


class UserStats(CamelModel):
    total_views: int
    total_clicks: int
    total_revenue: float
    conversion_rate: float
    chains_count: int
    active_chains_count: int
