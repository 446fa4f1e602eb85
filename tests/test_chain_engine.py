"""
Tests for ChainEngine - quota, lifecycle and engagement rules.
"""
from datetime import timedelta

import pytest

from app.core.exceptions import CapacityExceeded, NotFound, QuotaExceeded, ValidationError
from app.models.chain import Chain
from app.schemas.chain import ChainCreate, ChainSettingsPatch, ChainUpdate
from app.services.chain_engine import ChainEngine


def draft(**overrides) -> ChainCreate:
    data = {
        "name": "Noise-cancelling headphones",
        "price_initial": 100,
        "price_final": 80,
        "url": "https://shop.daftlink.io/p/headphones",
    }
    data.update(overrides)
    return ChainCreate(**data)


@pytest.fixture
def engine(db_session, clock):
    return ChainEngine(db_session, clock=clock)


@pytest.fixture
def owner(make_user):
    return make_user(plan_tier="free", username="alice")


# =============================================================================
# Create & quota
# =============================================================================

class TestCreate:

    def test_defaults(self, engine, owner, clock):
        chain = engine.create(owner, draft())

        assert chain.user_id == owner.id
        assert chain.status == "active"
        assert chain.discount == 20
        assert chain.emoji == "🔗"
        assert chain.category == "Other"
        assert chain.expires_in_days == 7
        assert chain.expires_at == clock.now + timedelta(days=7)
        assert chain.max_participants == 100
        assert chain.current_participants == 0
        assert chain.stats == {"views": 0, "clicks": 0, "conversions": 0, "revenue": 0}
        assert chain.settings == {
            "is_public": True,
            "show_participants": True,
            "show_countdown": True,
            "featured": False,
        }

    def test_order_appends_to_end(self, engine, owner):
        first = engine.create(owner, draft())
        second = engine.create(owner, draft())
        assert (first.order, second.order) == (0, 1)

    def test_caller_overrides(self, engine, owner, clock):
        chain = engine.create(owner, draft(
            expires_in_days=3,
            status="draft",
            max_participants=10,
            settings=ChainSettingsPatch(is_public=False),
        ))
        assert chain.status == "draft"
        assert chain.expires_at == clock.now + timedelta(days=3)
        assert chain.max_participants == 10
        assert chain.is_public is False
        assert chain.show_countdown is True

    def test_free_plan_quota(self, engine, owner):
        for _ in range(3):
            engine.create(owner, draft())

        with pytest.raises(QuotaExceeded):
            engine.create(owner, draft())
        assert engine.count_owned(owner) == 3

    def test_quota_frees_up_after_delete(self, engine, owner):
        chains = [engine.create(owner, draft()) for _ in range(3)]
        with pytest.raises(QuotaExceeded):
            engine.create(owner, draft())

        engine.delete(owner, chains[0].id)
        engine.create(owner, draft())
        assert engine.count_owned(owner) == 3

    def test_pro_plan_quota(self, engine, make_user):
        pro = make_user(plan_tier="pro")
        for _ in range(20):
            engine.create(pro, draft())
        with pytest.raises(QuotaExceeded):
            engine.create(pro, draft())

    def test_enterprise_is_unbounded(self, engine, make_user):
        enterprise = make_user(plan_tier="enterprise")
        for _ in range(25):
            engine.create(enterprise, draft())
        assert engine.count_owned(enterprise) == 25

    def test_quota_is_per_owner(self, engine, owner, make_user):
        other = make_user()
        for _ in range(3):
            engine.create(other, draft())
        engine.create(owner, draft())
        assert engine.count_owned(owner) == 1


# =============================================================================
# Update
# =============================================================================

class TestUpdate:

    def test_partial_update_leaves_other_fields(self, engine, owner):
        chain = engine.create(owner, draft(description="Original"))
        updated = engine.update(owner, chain.id, ChainUpdate(name="Renamed"))

        assert updated.name == "Renamed"
        assert updated.description == "Original"
        assert updated.price_initial == 100

    def test_falsy_values_apply(self, engine, owner):
        chain = engine.create(owner, draft(description="Something"))
        updated = engine.update(owner, chain.id, ChainUpdate(
            description="",
            price_final=0,
            settings=ChainSettingsPatch(is_public=False),
        ))

        assert updated.description == ""
        assert updated.price_final == 0
        assert updated.discount == 100
        assert updated.is_public is False

    def test_discount_recomputed_on_price_change(self, engine, owner):
        chain = engine.create(owner, draft())
        updated = engine.update(owner, chain.id, ChainUpdate(price_initial=150))
        assert updated.discount == updated.price_initial - updated.price_final == 70

    def test_settings_are_merged(self, engine, owner):
        chain = engine.create(owner, draft(settings=ChainSettingsPatch(featured=True)))
        updated = engine.update(owner, chain.id, ChainUpdate(
            settings=ChainSettingsPatch(show_countdown=False)
        ))
        assert updated.featured is True
        assert updated.show_countdown is False
        assert updated.is_public is True

    def test_expiry_reanchored_on_now(self, engine, owner, clock):
        t0 = clock.now
        chain = engine.create(owner, draft(expires_in_days=7))
        assert chain.expires_at == t0 + timedelta(days=7)

        t1 = clock.advance(days=2)
        updated = engine.update(owner, chain.id, ChainUpdate(expires_in_days=3))

        assert updated.expires_in_days == 3
        assert updated.expires_at == t1 + timedelta(days=3)
        assert updated.expires_at != t0 + timedelta(days=3)

    def test_status_change(self, engine, owner):
        chain = engine.create(owner, draft())
        updated = engine.update(owner, chain.id, ChainUpdate(status="paused"))
        assert updated.status == "paused"

    def test_not_owned(self, engine, owner, make_user):
        chain = engine.create(owner, draft())
        intruder = make_user()
        with pytest.raises(NotFound):
            engine.update(intruder, chain.id, ChainUpdate(name="Mine now"))

    def test_missing_chain(self, engine, owner):
        with pytest.raises(NotFound):
            engine.update(owner, 4242, ChainUpdate(name="Ghost"))

    def test_max_participants_below_current(self, engine, owner):
        chain = engine.create(owner, draft(max_participants=5))
        engine.add_participant(chain.id)
        engine.add_participant(chain.id)
        with pytest.raises(ValidationError):
            engine.update(owner, chain.id, ChainUpdate(max_participants=1))

    def test_max_participants_checked_against_stored_count(self, engine, owner, db_session):
        chain = engine.create(owner, draft(max_participants=5))
        # Participants joined elsewhere; the loaded chain still says 0
        db_session.query(Chain).filter(Chain.id == chain.id).update(
            {Chain.current_participants: 3}, synchronize_session=False
        )
        assert chain.current_participants == 0

        with pytest.raises(ValidationError):
            engine.update(owner, chain.id, ChainUpdate(max_participants=2, name="Shrunk"))

        db_session.refresh(chain)
        assert chain.max_participants == 5
        assert chain.name == "Noise-cancelling headphones"

    def test_max_participants_down_to_current(self, engine, owner):
        chain = engine.create(owner, draft(max_participants=5))
        engine.add_participant(chain.id)
        engine.add_participant(chain.id)

        updated = engine.update(owner, chain.id, ChainUpdate(max_participants=2))
        assert updated.max_participants == 2
        with pytest.raises(CapacityExceeded):
            engine.add_participant(chain.id)


# =============================================================================
# Delete & duplicate
# =============================================================================

class TestDeleteAndDuplicate:

    def test_delete(self, engine, owner, db_session):
        chain = engine.create(owner, draft())
        engine.delete(owner, chain.id)
        assert db_session.query(Chain).count() == 0

    def test_delete_not_owned(self, engine, owner, make_user):
        chain = engine.create(owner, draft())
        with pytest.raises(NotFound):
            engine.delete(make_user(), chain.id)
        assert engine.count_owned(owner) == 1

    def test_duplicate(self, engine, owner, clock):
        source = engine.create(owner, draft(
            expires_in_days=5,
            settings=ChainSettingsPatch(featured=True, is_public=False),
        ))
        engine.record_view(source.id)
        engine.record_click(source.id)

        clock.advance(days=1)
        copy = engine.duplicate(owner, source.id)

        assert copy.id != source.id
        assert copy.name == "Noise-cancelling headphones (copy)"
        assert copy.status == "draft"
        assert copy.stats == {"views": 0, "clicks": 0, "conversions": 0, "revenue": 0}
        assert copy.expires_in_days == 5
        assert copy.expires_at == clock.now + timedelta(days=5)
        assert copy.featured is True
        assert copy.is_public is False
        assert copy.discount == 20

    def test_duplicate_forces_draft_status(self, engine, owner):
        source = engine.create(owner, draft(status="completed"))
        assert engine.duplicate(owner, source.id).status == "draft"

    def test_duplicate_bypasses_quota(self, engine, owner):
        chains = [engine.create(owner, draft()) for _ in range(3)]
        engine.duplicate(owner, chains[0].id)
        assert engine.count_owned(owner) == 4

    def test_duplicate_keeps_name_within_limit(self, engine, owner):
        source = engine.create(owner, draft(name="x" * 100))
        copy = engine.duplicate(owner, source.id)
        assert len(copy.name) == 100
        assert copy.name.endswith(" (copy)")

    def test_duplicate_not_owned(self, engine, owner, make_user):
        chain = engine.create(owner, draft())
        with pytest.raises(NotFound):
            engine.duplicate(make_user(), chain.id)

    def test_duplicate_update_delete_round_trip(self, engine, owner, db_session):
        original = engine.create(owner, draft(description="Keep me"))
        before = engine.count_owned(owner)

        copy = engine.duplicate(owner, original.id)
        engine.update(owner, copy.id, ChainUpdate(name="Edited copy", price_final=10))
        engine.delete(owner, copy.id)

        db_session.refresh(original)
        assert engine.count_owned(owner) == before
        assert original.name == "Noise-cancelling headphones"
        assert original.description == "Keep me"
        assert original.price_final == 80


# =============================================================================
# Reorder & listing
# =============================================================================

class TestReorderAndList:

    def test_reorder_partial_and_skips_foreign_ids(self, engine, owner, make_user, db_session):
        a, b, c = (engine.create(owner, draft(name=n)) for n in ("A", "B", "C"))
        other = make_user()
        foreign = engine.create(other, draft(name="Foreign"))

        updated = engine.reorder(owner, [c.id, foreign.id, a.id])

        assert updated == 2
        for chain in (a, b, c, foreign):
            db_session.refresh(chain)
        assert c.order == 0
        assert a.order == 2
        assert b.order == 1  # not listed, unchanged
        assert foreign.order == 0  # not owned, unchanged

    def test_reorder_skips_ids_outside_integer_range(self, engine, owner, db_session):
        chain = engine.create(owner, draft())
        assert engine.reorder(owner, [10**20, chain.id]) == 1
        db_session.refresh(chain)
        assert chain.order == 1

    def test_list_owned_newest_first_with_pagination(self, engine, owner, clock):
        names = []
        for name in ("First", "Second", "Third"):
            engine.create(owner, draft(name=name))
            names.append(name)
            clock.advance(minutes=1)

        page_one, total = engine.list_owned(owner, page=1, limit=2)
        page_two, _ = engine.list_owned(owner, page=2, limit=2)

        assert total == 3
        assert [c.name for c in page_one] == ["Third", "Second"]
        assert [c.name for c in page_two] == ["First"]

    def test_list_owned_status_filter(self, engine, owner):
        engine.create(owner, draft(name="Live"))
        engine.create(owner, draft(name="Draft", status="draft"))

        active, total = engine.list_owned(owner, status="active")
        _, all_total = engine.list_owned(owner, status="all")

        assert [c.name for c in active] == ["Live"]
        assert total == 1
        assert all_total == 2

    def test_list_owned_sort_ascending(self, engine, owner):
        for name in ("Banana", "Apple", "Cherry"):
            engine.create(owner, draft(name=name))
        chains, _ = engine.list_owned(owner, sort="name")
        assert [c.name for c in chains] == ["Apple", "Banana", "Cherry"]

    def test_list_owned_rejects_unknown_sort_and_status(self, engine, owner):
        with pytest.raises(ValidationError):
            engine.list_owned(owner, sort="-hashed_password")
        with pytest.raises(ValidationError):
            engine.list_owned(owner, status="archived")

    def test_list_public(self, engine, owner, make_user):
        visible_b = engine.create(owner, draft(name="Visible B"))
        visible_a = engine.create(owner, draft(name="Visible A"))
        engine.create(owner, draft(name="Hidden", settings=ChainSettingsPatch(is_public=False)))
        foreign = engine.create(make_user(), draft(name="Someone else's"))
        engine.reorder(owner, [visible_a.id, visible_b.id])

        summary, chains = engine.list_public("alice")

        assert [c.name for c in chains] == ["Visible A", "Visible B"]
        assert foreign.id not in [c.id for c in chains]
        assert summary.username == "alice"
        assert summary.initials == "AM"
        assert not hasattr(summary, "email")
        assert not hasattr(summary, "hashed_password")

    @pytest.mark.parametrize("status", ["draft", "paused", "expired", "completed"])
    def test_list_public_only_active(self, engine, owner, status):
        engine.create(owner, draft(status=status))
        _, chains = engine.list_public("alice")
        assert chains == []

    def test_list_public_unknown_username(self, engine):
        with pytest.raises(NotFound):
            engine.list_public("nobody")


# =============================================================================
# Engagement
# =============================================================================

class TestEngagement:

    def test_record_view(self, engine, owner, db_session):
        chain = engine.create(owner, draft())
        engine.record_view(chain.id)
        db_session.refresh(chain)
        assert chain.stats == {"views": 1, "clicks": 0, "conversions": 0, "revenue": 0}

    def test_record_click_returns_url(self, engine, owner, db_session):
        chain = engine.create(owner, draft())
        url = engine.record_click(chain.id)
        db_session.refresh(chain)
        assert url == "https://shop.daftlink.io/p/headphones"
        assert chain.stats == {"views": 0, "clicks": 1, "conversions": 0, "revenue": 0}

    @pytest.mark.parametrize("status", ["draft", "paused", "expired", "completed"])
    def test_engagement_requires_active(self, engine, owner, db_session, status):
        chain = engine.create(owner, draft(status=status))
        with pytest.raises(NotFound):
            engine.record_view(chain.id)
        with pytest.raises(NotFound):
            engine.record_click(chain.id)
        db_session.refresh(chain)
        assert chain.views == 0
        assert chain.clicks == 0

    def test_engagement_on_missing_chain(self, engine):
        with pytest.raises(NotFound):
            engine.record_view(999)

    @pytest.mark.parametrize("chain_id", [0, -1, 2**31, 10**20])
    def test_ids_outside_integer_range_are_not_found(self, engine, owner, chain_id):
        for call in (engine.record_view, engine.record_click, engine.add_participant):
            with pytest.raises(NotFound):
                call(chain_id)
        with pytest.raises(NotFound):
            engine.get_owned(owner, chain_id)

    def test_add_participant_until_capacity(self, engine, owner):
        chain = engine.create(owner, draft(max_participants=2))

        assert engine.add_participant(chain.id).current_participants == 1
        assert engine.add_participant(chain.id).current_participants == 2
        with pytest.raises(CapacityExceeded):
            engine.add_participant(chain.id)

    def test_add_participant_missing_chain(self, engine):
        with pytest.raises(NotFound):
            engine.add_participant(999)

    def test_chain_stats(self, engine, owner, clock):
        chain = engine.create(owner, draft(max_participants=4))
        for _ in range(3):
            engine.record_view(chain.id)
        engine.record_click(chain.id)
        engine.add_participant(chain.id)

        stats = engine.chain_stats(owner, chain.id)

        assert stats.views == 3
        assert stats.clicks == 1
        assert stats.conversion_rate == 33.3
        assert stats.participants_progress == 25.0
        assert stats.days_left == 7

    def test_aggregate_user_stats(self, engine, owner, make_user):
        first = engine.create(owner, draft())
        second = engine.create(owner, draft(status="draft"))
        engine.create(make_user(), draft())  # not counted
        for _ in range(3):
            engine.record_view(first.id)
        engine.record_click(first.id)
        engine.update(owner, second.id, ChainUpdate(status="active"))
        engine.record_view(second.id)

        stats = engine.aggregate_user_stats(owner)

        assert stats.total_views == 4
        assert stats.total_clicks == 1
        assert stats.total_revenue == 0
        assert stats.conversion_rate == 25.0
        assert stats.chains_count == 2
        assert stats.active_chains_count == 2

    def test_aggregate_user_stats_without_views(self, engine, owner):
        stats = engine.aggregate_user_stats(owner)
        assert stats.conversion_rate == 0
        assert stats.chains_count == 0


# =============================================================================
# Expiration
# =============================================================================

class TestExpiration:

    def test_derived_countdown(self, engine, owner, clock):
        chain = engine.create(owner, draft(expires_in_days=7))
        assert chain.days_left(clock.now) == 7
        assert chain.is_expired(clock.now) is False

        later = clock.now + timedelta(days=6, hours=12)
        assert chain.days_left(later) == 1

        after = clock.now + timedelta(days=8)
        assert chain.days_left(after) == 0
        assert chain.is_expired(after) is True

    def test_sweep_is_idempotent(self, engine, owner, clock, db_session):
        overdue = engine.create(owner, draft(expires_in_days=1))
        fresh = engine.create(owner, draft(expires_in_days=30))
        overdue_draft = engine.create(owner, draft(expires_in_days=1, status="draft"))

        now = clock.now + timedelta(days=2)
        assert engine.sweep_expired(now) == 1
        assert engine.sweep_expired(now) == 0

        for chain in (overdue, fresh, overdue_draft):
            db_session.refresh(chain)
        assert overdue.status == "expired"
        assert fresh.status == "active"
        assert overdue_draft.status == "draft"

    def test_expired_chain_rejects_engagement(self, engine, owner, clock):
        chain = engine.create(owner, draft(expires_in_days=1))
        engine.sweep_expired(clock.now + timedelta(days=2))
        with pytest.raises(NotFound):
            engine.record_click(chain.id)
