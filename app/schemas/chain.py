from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_serializer, field_validator

from app.schemas.base import CamelModel, as_utc

ChainStatus = Literal["draft", "active", "paused", "expired", "completed"]
ChainCategory = Literal["Electronics", "Fashion", "Home", "Sport", "Beauty", "Gaming", "Other"]

URL_PATTERN = r"^https?://.+"


def _strip_name(value):
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Product name is required")
    return value


class ChainSettingsPatch(CamelModel):
    is_public: Optional[bool] = None
    show_participants: Optional[bool] = None
    show_countdown: Optional[bool] = None
    featured: Optional[bool] = None


class ChainCreate(CamelModel):
    name: str = Field(max_length=100)
    emoji: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    category: ChainCategory = "Other"
    price_initial: float = Field(ge=0)
    price_final: float = Field(ge=0)
    url: str = Field(pattern=URL_PATTERN)
    expires_in_days: Optional[int] = Field(default=None, ge=1)
    max_participants: Optional[int] = Field(default=None, ge=1)
    status: Optional[ChainStatus] = None
    settings: Optional[ChainSettingsPatch] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value):
        return _strip_name(value)


class ChainUpdate(CamelModel):
    name: Optional[str] = Field(default=None, max_length=100)
    emoji: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[ChainCategory] = None
    price_initial: Optional[float] = Field(default=None, ge=0)
    price_final: Optional[float] = Field(default=None, ge=0)
    url: Optional[str] = Field(default=None, pattern=URL_PATTERN)
    expires_in_days: Optional[int] = Field(default=None, ge=1)
    max_participants: Optional[int] = Field(default=None, ge=1)
    status: Optional[ChainStatus] = None
    settings: Optional[ChainSettingsPatch] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value):
        return _strip_name(value)


class ReorderRequest(CamelModel):
    chain_ids: List[int]


class ChainStats(CamelModel):
    views: int = 0
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0


class ChainSettings(CamelModel):
    is_public: bool = True
    show_participants: bool = True
    show_countdown: bool = True
    featured: bool = False


class ChainResponse(CamelModel):
    id: int
    user_id: int
    name: str
    emoji: str
    description: Optional[str] = None
    category: str
    price_initial: float
    price_final: float
    discount: float
    url: str
    expires_at: datetime
    expires_in_days: int
    max_participants: int
    current_participants: int
    status: str
    stats: ChainStats
    settings: ChainSettings
    order: int
    created_at: datetime
    updated_at: datetime
    days_left: int
    is_expired: bool
    conversion_rate: float
    participants_progress: float

    @field_serializer("expires_at", "created_at", "updated_at")
    def serialize_timestamp(self, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_chain(cls, chain, now: datetime = None) -> "ChainResponse":
        return cls(
            id=chain.id,
            user_id=chain.user_id,
            name=chain.name,
            emoji=chain.emoji,
            description=chain.description,
            category=chain.category,
            price_initial=chain.price_initial,
            price_final=chain.price_final,
            discount=chain.discount,
            url=chain.url,
            expires_at=chain.expires_at,
            expires_in_days=chain.expires_in_days,
            max_participants=chain.max_participants,
            current_participants=chain.current_participants,
            status=chain.status,
            stats=chain.stats,
            settings=chain.settings,
            order=chain.order,
            created_at=chain.created_at,
            updated_at=chain.updated_at,
            days_left=chain.days_left(now),
            is_expired=chain.is_expired(now),
            conversion_rate=chain.conversion_rate,
            participants_progress=chain.participants_progress,
        )


class ChainStatsResponse(ChainStats):
    conversion_rate: float
    days_left: int
    participants_progress: float
