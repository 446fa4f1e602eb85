import math
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, Text, Index, event
from app.db.base import Base

CHAIN_STATUSES = ("draft", "active", "paused", "expired", "completed")
CHAIN_CATEGORIES = ("Electronics", "Fashion", "Home", "Sport", "Beauty", "Gaming", "Other")

DEFAULT_EMOJI = "🔗"
DEFAULT_EXPIRES_IN_DAYS = 7
DEFAULT_MAX_PARTICIPANTS = 100


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column on chains."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Chain(Base):
    __tablename__ = "chains"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    emoji = Column(String, default=DEFAULT_EMOJI, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, default="Other", nullable=False)
    price_initial = Column(Float, nullable=False)
    price_final = Column(Float, nullable=False)
    discount = Column(Float, default=0, nullable=False)  # priceInitial - priceFinal, set on every flush
    url = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    expires_in_days = Column(Integer, default=DEFAULT_EXPIRES_IN_DAYS, nullable=False)
    max_participants = Column(Integer, default=DEFAULT_MAX_PARTICIPANTS, nullable=False)
    current_participants = Column(Integer, default=0, nullable=False)
    status = Column(String, default="active", nullable=False)

    # Engagement counters
    views = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)
    conversions = Column(Integer, default=0, nullable=False)
    revenue = Column(Float, default=0, nullable=False)

    # Display settings
    is_public = Column(Boolean, default=True, nullable=False)
    show_participants = Column(Boolean, default=True, nullable=False)
    show_countdown = Column(Boolean, default=True, nullable=False)
    featured = Column(Boolean, default=False, nullable=False)

    order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_chains_user_status", "user_id", "status"),
        Index("ix_chains_user_created", "user_id", "created_at"),
        Index("ix_chains_expires_at", "expires_at"),
    )

    @property
    def stats(self) -> dict:
        return {
            "views": self.views or 0,
            "clicks": self.clicks or 0,
            "conversions": self.conversions or 0,
            "revenue": self.revenue or 0,
        }

    @property
    def settings(self) -> dict:
        return {
            "is_public": self.is_public,
            "show_participants": self.show_participants,
            "show_countdown": self.show_countdown,
            "featured": self.featured,
        }

    def days_left(self, now: datetime = None) -> int:
        now = now or utcnow()
        seconds = (self.expires_at - now).total_seconds()
        return max(0, math.ceil(seconds / 86400))

    def is_expired(self, now: datetime = None) -> bool:
        now = now or utcnow()
        return now > self.expires_at

    @property
    def conversion_rate(self) -> float:
        if not self.views:
            return 0
        return round(self.clicks / self.views * 100, 1)

    @property
    def participants_progress(self) -> float:
        if not self.max_participants:
            return 0
        return round(self.current_participants / self.max_participants * 100, 1)

    def __repr__(self):
        return f"<Chain(id={self.id}, user_id={self.user_id}, status={self.status})>"


@event.listens_for(Chain, "before_insert")
@event.listens_for(Chain, "before_update")
def _recompute_discount(mapper, connection, target):
    if target.price_initial is not None and target.price_final is not None:
        target.discount = target.price_initial - target.price_final
