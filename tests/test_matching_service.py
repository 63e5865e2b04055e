"""
Swipe/Match State Machine Tests

Tests validate:
- Mutual like promotes the pair regardless of order
- Dislikes never accept a pair
- One swipe record per user per pair (overwrite, not append)
- Swipe quota consumption (likes only, never on short-circuit or denial)
- Self swipes and unknown targets are rejected without side effects
- Match notifications are published after commit and never roll it back
- Conflicting writers are replayed
"""

from datetime import timedelta
import uuid

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.match import Match, pair_key
from app.models.user import User
from app.services.matching import MatchingService, SwipeResult
from app.services.projections import MatchProjections

from conftest import FailingEmitter


async def load_pair(session_maker, user_a, user_b):
    low, high = pair_key(user_a.id, user_b.id)
    async with session_maker() as session:
        result = await session.execute(
            select(Match).where(Match.user_low_id == low, Match.user_high_id == high)
        )
        return result.scalar_one_or_none()


async def count_pairs(session_maker):
    async with session_maker() as session:
        result = await session.execute(select(func.count()).select_from(Match))
        return result.scalar_one()


@pytest.fixture
def service(db, emitter, fixed_clock):
    return MatchingService(db, emitter, fixed_clock)


# ============================================================================
# Mutual Like
# ============================================================================

class TestMutualLike:
    """like + like = match."""

    @pytest.mark.parametrize("first_liker", ["a", "b"])
    async def test_second_like_matches_either_order(self, service, make_user, session_maker, first_liker):
        a = await make_user("Alex")
        b = await make_user("Blair")
        first, second = (a, b) if first_liker == "a" else (b, a)

        first_result = await service.swipe(first.id, second.id, "like")
        second_result = await service.swipe(second.id, first.id, "like")

        assert first_result.is_match is False
        assert second_result.is_match is True
        assert second_result.match_id == first_result.match_id

        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is True
        assert pair.matched_at is not None

    async def test_worked_example(self, service, make_user, session_maker, fetch, emitter):
        """A likes B, then B likes A: one accepted pair, two records, both notified."""
        a = await make_user("Alex")
        b = await make_user("Blair")

        result = await service.swipe(a.id, b.id, "like")
        assert result.is_match is False
        assert (await fetch(User, a.id)).daily_swipe_count == 1

        result = await service.swipe(b.id, a.id, "like")
        assert result.is_match is True
        assert result.message == "It's a Match!"

        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is True
        assert len(pair.swipes) == 2
        assert pair.swipe_of(a.id) == "like"
        assert pair.swipe_of(b.id) == "like"

        assert emitter.kinds_for(a.id) == ["match"]
        assert emitter.kinds_for(b.id) == ["match"]
        assert all(event.related_id == pair.id for event in emitter.events)
        assert "Alex" in next(e.content for e in emitter.events if e.recipient == b.id)

    async def test_already_matched_short_circuits(self, service, make_user, fetch, emitter):
        a = await make_user()
        b = await make_user()
        await service.swipe(a.id, b.id, "like")
        await service.swipe(b.id, a.id, "like")
        used_before = (await fetch(User, b.id)).daily_swipe_count

        result = await service.swipe(b.id, a.id, "like")

        assert result.is_match is True
        assert result.already_matched is True
        assert result.message == "Already matched!"
        assert (await fetch(User, b.id)).daily_swipe_count == used_before
        # No second round of match notifications
        assert len(emitter.events) == 2

    async def test_accepted_pair_never_reverts(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()
        await service.swipe(a.id, b.id, "like")
        await service.swipe(b.id, a.id, "like")

        await service.swipe(a.id, b.id, "dislike")

        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is True
        assert pair.swipe_of(a.id) == "like"


# ============================================================================
# Non-matching States
# ============================================================================

class TestPendingPairs:
    """Pairs that stay pending."""

    async def test_dislike_then_like_never_accepts(self, service, make_user, session_maker, db):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "dislike")
        result = await service.swipe(b.id, a.id, "like")

        assert result.is_match is False
        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is False

        projections = MatchProjections(db)
        assert await projections.incoming_likes(a.id) == []
        # B's like shows as rejected: A answered with a dislike
        b_likes = await projections.my_likes(b.id)
        assert [entry.user.id for entry in b_likes.rejected] == [a.id]

    async def test_like_then_dislike_stays_pending(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like")
        result = await service.swipe(b.id, a.id, "dislike")

        assert result.is_match is False
        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is False
        assert pair.swipe_of(b.id) == "dislike"

    async def test_one_sided_like_is_pending_for_liker(self, service, make_user, db):
        a = await make_user()
        b = await make_user()

        await service.swipe(b.id, a.id, "like")

        b_likes = await MatchProjections(db).my_likes(b.id)
        assert [entry.user.id for entry in b_likes.pending] == [a.id]

    async def test_repeat_like_overwrites_record(self, service, make_user, session_maker, fetch):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like")
        await service.swipe(a.id, b.id, "like")

        pair = await load_pair(session_maker, a, b)
        assert pair.swipes == [{"user": str(a.id), "action": "like"}]
        assert (await fetch(User, a.id)).daily_swipe_count == 2

    async def test_changing_mind_overwrites_record(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "dislike")
        await service.swipe(a.id, b.id, "like")

        pair = await load_pair(session_maker, a, b)
        assert pair.swipes == [{"user": str(a.id), "action": "like"}]

    async def test_reversed_dislike_can_still_match(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()

        await service.swipe(b.id, a.id, "like")
        await service.swipe(a.id, b.id, "dislike")
        result = await service.swipe(a.id, b.id, "like")

        assert result.is_match is True
        pair = await load_pair(session_maker, a, b)
        assert len(pair.swipes) == 2
        assert pair.swipe_of(a.id) == "like"

    async def test_mode_fixed_by_first_swipe(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like", mode="friends")
        await service.swipe(b.id, a.id, "like", mode="dating")

        pair = await load_pair(session_maker, a, b)
        assert pair.mode == "friends"
        assert pair.room_id.startswith("dm_")

    async def test_mode_defaults_to_dating(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "dislike")

        pair = await load_pair(session_maker, a, b)
        assert pair.mode == "dating"


# ============================================================================
# Swipe Quota
# ============================================================================

class TestSwipeQuota:
    """Free users get two likes per day; dislikes are free."""

    async def test_third_like_denied(self, service, make_user, session_maker):
        a = await make_user()
        targets = [await make_user() for _ in range(3)]

        await service.swipe(a.id, targets[0].id, "like")
        await service.swipe(a.id, targets[1].id, "like")
        with pytest.raises(ForbiddenError) as exc_info:
            await service.swipe(a.id, targets[2].id, "like")

        assert exc_info.value.limit == 2
        assert exc_info.value.used == 2
        assert exc_info.value.is_premium_required is True
        # Denied attempt leaves no trace
        assert await load_pair(session_maker, a, targets[2]) is None

    async def test_dislikes_do_not_consume_quota(self, service, make_user, fetch):
        a = await make_user()
        targets = [await make_user() for _ in range(4)]

        for target in targets:
            await service.swipe(a.id, target.id, "dislike")

        stored = await fetch(User, a.id)
        assert stored.daily_swipe_count == 0
        result = await service.swipe(a.id, targets[0].id, "like")
        assert result.is_match is False

    async def test_dislike_allowed_when_quota_spent(self, service, make_user, fixed_clock):
        a = await make_user(daily_swipe_count=2, last_swipe_date=fixed_clock.today_key())
        b = await make_user()

        result = await service.swipe(a.id, b.id, "dislike")

        assert result.is_match is False

    async def test_matching_like_consumes_quota(self, service, make_user, fetch):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like")
        await service.swipe(b.id, a.id, "like")

        assert (await fetch(User, b.id)).daily_swipe_count == 1

    async def test_premium_user_never_denied(self, service, make_user, fetch):
        a = await make_user(is_premium=True, subscription_tier="premium")
        targets = [await make_user() for _ in range(5)]

        for target in targets:
            result = await service.swipe(a.id, target.id, "like")
            assert result.is_match is False

        assert (await fetch(User, a.id)).daily_swipe_count == 0

    async def test_new_day_resets_quota(self, service, make_user, fetch, fixed_clock):
        a = await make_user(daily_swipe_count=2, last_swipe_date="2026-10-18")
        b = await make_user()

        await service.swipe(a.id, b.id, "like")

        stored = await fetch(User, a.id)
        assert stored.daily_swipe_count == 1
        assert stored.last_swipe_date == fixed_clock.today_key()

    async def test_expired_premium_downgraded_on_swipe(self, service, make_user, fetch, fixed_clock):
        a = await make_user(
            is_premium=True,
            subscription_tier="premium",
            premium_expires_at=fixed_clock.now() - timedelta(seconds=1),
            daily_swipe_count=2,
            last_swipe_date=fixed_clock.today_key(),
        )
        b = await make_user()

        with pytest.raises(ForbiddenError):
            await service.swipe(a.id, b.id, "like")

        stored = await fetch(User, a.id)
        assert stored.is_premium is False
        assert stored.subscription_tier == "free"


# ============================================================================
# Rejections
# ============================================================================

class TestRejectedSwipes:
    """Invalid swipes fail without side effects."""

    async def test_self_swipe_rejected(self, service, make_user, session_maker):
        a = await make_user()

        with pytest.raises(ForbiddenError):
            await service.swipe(a.id, a.id, "like")

        assert await count_pairs(session_maker) == 0

    async def test_unknown_target(self, service, make_user, session_maker):
        a = await make_user()

        with pytest.raises(NotFoundError):
            await service.swipe(a.id, uuid.uuid4(), "like")

        assert await count_pairs(session_maker) == 0

    async def test_invalid_action(self, service, make_user):
        a = await make_user()
        b = await make_user()

        with pytest.raises(ValidationError) as exc_info:
            await service.swipe(a.id, b.id, "superlike")

        assert exc_info.value.status_code == 422

    async def test_invalid_mode(self, service, make_user):
        a = await make_user()
        b = await make_user()

        with pytest.raises(ValidationError):
            await service.swipe(a.id, b.id, "like", mode="business")


# ============================================================================
# Respond
# ============================================================================

class TestRespond:
    """Answering an incoming like on a known pair."""

    async def test_respond_like_matches(self, service, make_user, emitter):
        a = await make_user()
        b = await make_user()
        first = await service.swipe(a.id, b.id, "like")

        result = await service.respond(first.match_id, b.id, "like")

        assert result.is_match is True
        assert result.match_id == first.match_id
        assert emitter.kinds_for(a.id) == ["match"]

    async def test_respond_dislike(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()
        first = await service.swipe(a.id, b.id, "like")

        result = await service.respond(first.match_id, b.id, "dislike")

        assert result.is_match is False
        pair = await load_pair(session_maker, a, b)
        assert pair.swipe_of(b.id) == "dislike"

    async def test_respond_to_own_pending_like_does_not_match(self, service, make_user):
        a = await make_user()
        b = await make_user()
        first = await service.swipe(a.id, b.id, "like")

        result = await service.respond(first.match_id, a.id, "like")

        assert result.is_match is False

    async def test_respond_requires_participant(self, service, make_user):
        a = await make_user()
        b = await make_user()
        outsider = await make_user()
        first = await service.swipe(a.id, b.id, "like")

        with pytest.raises(ForbiddenError):
            await service.respond(first.match_id, outsider.id, "like")

    async def test_respond_unknown_match(self, service, make_user):
        a = await make_user()

        with pytest.raises(NotFoundError):
            await service.respond(uuid.uuid4(), a.id, "like")


# ============================================================================
# Notifications and Conflicts
# ============================================================================

class TestDeliveryAndConflicts:
    """Publish-after-commit and replay on conflicting writers."""

    async def test_failed_notification_keeps_match(self, db, make_user, session_maker, fixed_clock):
        failing = FailingEmitter()
        service = MatchingService(db, failing, fixed_clock)
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like")
        result = await service.swipe(b.id, a.id, "like")

        assert result.is_match is True
        assert failing.attempts == 2
        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is True

    async def test_no_notifications_without_match(self, service, make_user, emitter):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like")

        assert emitter.events == []

    async def test_conflict_is_replayed(self, service):
        calls = {"n": 0}

        async def attempt(outbox):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("version mismatch")
            return SwipeResult(is_match=False)

        result = await service._transact(attempt)

        assert calls["n"] == 2
        assert result.is_match is False

    async def test_persistent_conflict_surfaces(self, service):
        async def attempt(outbox):
            raise StaleDataError("version mismatch")

        with pytest.raises(ConflictError):
            await service._transact(attempt)

    async def test_pair_version_advances(self, service, make_user, session_maker):
        a = await make_user()
        b = await make_user()

        await service.swipe(a.id, b.id, "like")
        first_version = (await load_pair(session_maker, a, b)).version
        await service.swipe(b.id, a.id, "like")

        assert (await load_pair(session_maker, a, b)).version == first_version + 1


# ============================================================================
# Concurrent Requests
# ============================================================================

class InterleavedMatchingService(MatchingService):
    """Runs a competing request after the pair is read and before it is written."""

    def __init__(self, *args, competing=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.competing = competing
        self.applied = 0

    async def _apply(self, *args, **kwargs):
        self.applied += 1
        competing, self.competing = self.competing, None
        if competing is not None:
            await competing()
        return await super()._apply(*args, **kwargs)


class TestConcurrentRequests:
    """Two sessions touching the same user or pair."""

    async def test_quota_reads_counters_committed_by_other_request(
        self, db, service, make_user, session_maker, emitter, fixed_clock, fetch
    ):
        a = await make_user(daily_swipe_count=1, last_swipe_date=fixed_clock.today_key())
        b = await make_user()
        c = await make_user()
        # This request resolved its current user before the other one committed
        stale = await db.get(User, a.id)
        assert stale.daily_swipe_count == 1

        async with session_maker() as other_request:
            await MatchingService(other_request, emitter, fixed_clock).swipe(a.id, b.id, "like")

        with pytest.raises(ForbiddenError) as exc_info:
            await service.swipe(a.id, c.id, "like")

        assert exc_info.value.used == 2
        assert (await fetch(User, a.id)).daily_swipe_count == 2
        assert await load_pair(session_maker, a, c) is None

    async def test_racing_likes_accept_exactly_once(
        self, db, service, make_user, session_maker, emitter, fixed_clock
    ):
        a = await make_user()
        b = await make_user()
        await service.swipe(a.id, b.id, "dislike")

        async def a_changes_mind():
            async with session_maker() as other_request:
                result = await MatchingService(other_request, emitter, fixed_clock).swipe(a.id, b.id, "like")
                assert result.is_match is False

        racer = InterleavedMatchingService(db, emitter, fixed_clock, competing=a_changes_mind)
        result = await racer.swipe(b.id, a.id, "like")

        # First attempt lost the version check and was replayed
        assert racer.applied == 2
        assert result.is_match is True
        assert emitter.kinds_for(a.id) == ["match"]
        assert emitter.kinds_for(b.id) == ["match"]
        assert len(emitter.events) == 2

        pair = await load_pair(session_maker, a, b)
        assert pair.is_accepted is True
        assert pair.swipe_of(a.id) == "like"
        assert pair.swipe_of(b.id) == "like"

    async def test_swipe_and_respond_lock_user_before_pair(self, db, service, make_user):
        a = await make_user()
        b = await make_user()
        first = await service.swipe(a.id, b.id, "like")

        locks = []

        def record_locks(state):
            compiled = str(state.statement.compile(dialect=postgresql.dialect()))
            if state.is_select and "FOR UPDATE" in compiled:
                locks.append(state.bind_mapper.local_table.name)

        event.listen(db.sync_session, "do_orm_execute", record_locks)

        await service.swipe(b.id, a.id, "dislike")
        swipe_locks, locks[:] = list(locks), []
        await service.respond(first.match_id, b.id, "like")

        assert swipe_locks == ["users", "matches"]
        assert locks == ["users", "matches"]
