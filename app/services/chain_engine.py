"""
Quota & lifecycle engine: the only place that mutates chain state.

Owners create/edit/delete/duplicate/reorder their chains through it,
anonymous visitors bump engagement counters on active chains, and the
periodic sweep moves overdue active chains to "expired".
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import CapacityExceeded, NotFound, QuotaExceeded, ValidationError
from app.core.plan_limits import get_plan_limit, is_unlimited
from app.models.chain import (
    CHAIN_STATUSES,
    DEFAULT_EMOJI,
    DEFAULT_EXPIRES_IN_DAYS,
    DEFAULT_MAX_PARTICIPANTS,
    Chain,
    utcnow,
)
from app.models.user import User
from app.schemas.auth import PublicOwnerSummary, UserStats
from app.schemas.chain import ChainCreate, ChainStatsResponse, ChainUpdate

logger = logging.getLogger(__name__)

COPY_SUFFIX = " (copy)"
NAME_MAX_LENGTH = 100

SETTINGS_FIELDS = ("is_public", "show_participants", "show_countdown", "featured")
DEFAULT_SETTINGS = {
    "is_public": True,
    "show_participants": True,
    "show_countdown": True,
    "featured": False,
}

# Columns that may be cleared by an explicit null in a patch
NULLABLE_FIELDS = {"description"}

SORT_FIELDS = {
    "createdAt": Chain.created_at,
    "updatedAt": Chain.updated_at,
    "name": Chain.name,
    "order": Chain.order,
    "expiresAt": Chain.expires_at,
    "priceFinal": Chain.price_final,
    "discount": Chain.discount,
}
DEFAULT_SORT = "-createdAt"

# Largest value an INTEGER primary key can hold on every supported database
MAX_CHAIN_ID = 2**31 - 1


def is_valid_chain_id(chain_id: int) -> bool:
    return 0 < chain_id <= MAX_CHAIN_ID


class ChainEngine:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def count_owned(self, owner: User) -> int:
        return self.db.query(Chain).filter(Chain.user_id == owner.id).count()

    def get_owned(self, owner: User, chain_id: int) -> Chain:
        if not is_valid_chain_id(chain_id):
            raise NotFound("Chain not found")
        chain = self.db.query(Chain).filter(
            Chain.id == chain_id,
            Chain.user_id == owner.id
        ).first()
        if not chain:
            raise NotFound("Chain not found")
        return chain

    def create(self, owner: User, draft: ChainCreate) -> Chain:
        chain_count = self.count_owned(owner)
        max_chains = get_plan_limit(owner.plan_tier, "max_chains")
        if not is_unlimited(max_chains) and chain_count >= max_chains:
            raise QuotaExceeded(
                f"Chain limit reached for the {owner.plan_tier} plan ({max_chains}). "
                f"Upgrade to create more."
            )

        now = self.clock()
        expires_in_days = draft.expires_in_days or DEFAULT_EXPIRES_IN_DAYS

        settings = dict(DEFAULT_SETTINGS)
        if draft.settings is not None:
            settings.update(draft.settings.model_dump(exclude_none=True))

        chain = Chain(
            user_id=owner.id,
            name=draft.name,
            emoji=draft.emoji or DEFAULT_EMOJI,
            description=draft.description,
            category=draft.category,
            price_initial=draft.price_initial,
            price_final=draft.price_final,
            url=draft.url,
            expires_at=now + timedelta(days=expires_in_days),
            expires_in_days=expires_in_days,
            max_participants=draft.max_participants or DEFAULT_MAX_PARTICIPANTS,
            current_participants=0,
            status=draft.status or "active",
            order=chain_count,  # Append to the end
            created_at=now,
            updated_at=now,
            **settings
        )
        self.db.add(chain)
        self.db.commit()
        self.db.refresh(chain)
        logger.info("Chain %s created for user %s (%s/%s)", chain.id, owner.id, chain_count + 1, max_chains)
        return chain

    def update(self, owner: User, chain_id: int, patch: ChainUpdate) -> Chain:
        chain = self.get_owned(owner, chain_id)

        # Only fields the caller actually sent; falsy values (0, "", False) still apply
        changes = patch.model_dump(exclude_unset=True)
        settings_patch = changes.pop("settings", None)
        expires_in_days = changes.pop("expires_in_days", None)

        new_max = changes.pop("max_participants", None)
        if new_max is not None and not self._set_max_participants(chain, new_max):
            self.db.rollback()
            self.db.refresh(chain)
            raise ValidationError(
                f"maxParticipants cannot be lower than the current number of participants "
                f"({chain.current_participants})"
            )

        for field, value in changes.items():
            if value is None and field not in NULLABLE_FIELDS:
                continue
            setattr(chain, field, value)

        if expires_in_days is not None:
            # Re-anchor the countdown on "now", not on the creation date
            chain.expires_in_days = expires_in_days
            chain.expires_at = self.clock() + timedelta(days=expires_in_days)

        if settings_patch:
            # Shallow merge over the existing settings
            for field, value in settings_patch.items():
                if value is not None:
                    setattr(chain, field, value)

        self.db.commit()
        self.db.refresh(chain)
        return chain

    def delete(self, owner: User, chain_id: int) -> None:
        chain = self.get_owned(owner, chain_id)
        self.db.delete(chain)
        self.db.commit()
        logger.info("Chain %s deleted by user %s", chain_id, owner.id)

    def duplicate(self, owner: User, chain_id: int) -> Chain:
        """
        Copy an owned chain as a draft. Not subject to the plan's chain quota.
        """
        source = self.get_owned(owner, chain_id)
        now = self.clock()

        base_name = source.name[:NAME_MAX_LENGTH - len(COPY_SUFFIX)]
        copy = Chain(
            user_id=owner.id,
            name=f"{base_name}{COPY_SUFFIX}",
            emoji=source.emoji,
            description=source.description,
            category=source.category,
            price_initial=source.price_initial,
            price_final=source.price_final,
            url=source.url,
            expires_at=now + timedelta(days=source.expires_in_days),
            expires_in_days=source.expires_in_days,
            max_participants=source.max_participants,
            current_participants=0,
            status="draft",
            views=0,
            clicks=0,
            conversions=0,
            revenue=0,
            order=self.count_owned(owner),
            created_at=now,
            updated_at=now,
            **{field: getattr(source, field) for field in SETTINGS_FIELDS}
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        logger.info("Chain %s duplicated as %s for user %s", source.id, copy.id, owner.id)
        return copy

    def reorder(self, owner: User, ordered_ids: Sequence[int]) -> int:
        """
        Set each listed chain's order to its position in the list.
        Ids the caller does not own are skipped; unlisted chains keep their order.
        Returns how many chains were updated.
        """
        updated = 0
        for index, chain_id in enumerate(ordered_ids):
            if not is_valid_chain_id(chain_id):
                continue
            updated += self.db.query(Chain).filter(
                Chain.id == chain_id,
                Chain.user_id == owner.id
            ).update({Chain.order: index}, synchronize_session=False)
        self.db.commit()
        return updated

    def list_owned(
        self,
        owner: User,
        status: Optional[str] = None,
        sort: str = DEFAULT_SORT,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Chain], int]:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")

        query = self.db.query(Chain).filter(Chain.user_id == owner.id)
        if status and status != "all":
            if status not in CHAIN_STATUSES:
                raise ValidationError(f"Unknown status filter: {status}")
            query = query.filter(Chain.status == status)

        total = query.count()
        chains = (
            query.order_by(*self._sort_clause(sort))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return chains, total

    def chain_stats(self, owner: User, chain_id: int) -> ChainStatsResponse:
        chain = self.get_owned(owner, chain_id)
        return ChainStatsResponse(
            **chain.stats,
            conversion_rate=chain.conversion_rate,
            days_left=chain.days_left(self.clock()),
            participants_progress=chain.participants_progress,
        )

    def aggregate_user_stats(self, owner: User) -> UserStats:
        total_views, total_clicks, total_revenue, chains_count = self.db.query(
            func.coalesce(func.sum(Chain.views), 0),
            func.coalesce(func.sum(Chain.clicks), 0),
            func.coalesce(func.sum(Chain.revenue), 0),
            func.count(Chain.id),
        ).filter(Chain.user_id == owner.id).one()

        active_chains_count = self.db.query(Chain).filter(
            Chain.user_id == owner.id,
            Chain.status == "active"
        ).count()

        conversion_rate = round(total_clicks / total_views * 100, 1) if total_views else 0
        return UserStats(
            total_views=total_views,
            total_clicks=total_clicks,
            total_revenue=total_revenue,
            conversion_rate=conversion_rate,
            chains_count=chains_count,
            active_chains_count=active_chains_count,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def list_public(self, username: str) -> Tuple[PublicOwnerSummary, List[Chain]]:
        user = self.db.query(User).filter(User.username == username).first()
        if not user:
            raise NotFound("User not found")

        chains = self.db.query(Chain).filter(
            Chain.user_id == user.id,
            Chain.status == "active",
            Chain.is_public.is_(True)
        ).order_by(Chain.order.asc(), Chain.id.asc()).all()

        owner = PublicOwnerSummary(
            name=user.name,
            username=user.username,
            avatar=user.avatar,
            bio=user.bio,
            initials=user.initials,
        )
        return owner, chains

    def record_view(self, chain_id: int) -> None:
        self._increment_active(chain_id, Chain.views)
        self.db.commit()

    def record_click(self, chain_id: int) -> str:
        """Count a click and return the product URL to redirect to."""
        self._increment_active(chain_id, Chain.clicks)
        url = self.db.query(Chain.url).filter(Chain.id == chain_id).scalar()
        self.db.commit()
        return url

    def add_participant(self, chain_id: int) -> Chain:
        if not is_valid_chain_id(chain_id):
            raise NotFound("Chain not found")
        # Capacity check and increment happen in one UPDATE
        updated = self.db.query(Chain).filter(
            Chain.id == chain_id,
            Chain.current_participants < Chain.max_participants
        ).update(
            {Chain.current_participants: Chain.current_participants + 1},
            synchronize_session=False
        )
        if not updated:
            self.db.rollback()
            if not self.db.query(Chain.id).filter(Chain.id == chain_id).first():
                raise NotFound("Chain not found")
            raise CapacityExceeded()
        self.db.commit()
        return self.db.query(Chain).filter(Chain.id == chain_id).one()

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def sweep_expired(self, now: datetime = None) -> int:
        """Move every active chain whose expiry has passed to "expired". Idempotent."""
        now = now or self.clock()
        expired = self.db.query(Chain).filter(
            Chain.status == "active",
            Chain.expires_at < now
        ).update({Chain.status: "expired"}, synchronize_session=False)
        self.db.commit()
        if expired:
            logger.info("Expired %s chain(s) at %s", expired, now.isoformat())
        return expired

    # ------------------------------------------------------------------

    def _increment_active(self, chain_id: int, column) -> None:
        if not is_valid_chain_id(chain_id):
            raise NotFound("Chain not found or inactive")
        updated = self.db.query(Chain).filter(
            Chain.id == chain_id,
            Chain.status == "active"
        ).update({column: column + 1}, synchronize_session=False)
        if not updated:
            self.db.rollback()
            raise NotFound("Chain not found or inactive")

    def _set_max_participants(self, chain: Chain, new_max: int) -> bool:
        # Guarded on the stored participant count, not the loaded one
        return bool(self.db.query(Chain).filter(
            Chain.id == chain.id,
            Chain.current_participants <= new_max
        ).update({Chain.max_participants: new_max}, synchronize_session=False))

    @staticmethod
    def _sort_clause(sort: Optional[str]):
        sort = sort or DEFAULT_SORT
        descending = sort.startswith("-")
        key = sort.lstrip("-")
        column = SORT_FIELDS.get(key)
        if column is None:
            raise ValidationError(f"Unsupported sort field: {key}")
        if descending:
            return column.desc(), Chain.id.desc()
        return column.asc(), Chain.id.asc()
