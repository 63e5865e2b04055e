"""
Swipe/Match state machine.

Each unordered pair of users has a single ``Match`` record:

    NONE --first swipe--> PENDING --both sides like--> MATCHED (terminal)

A pair can stay PENDING forever (dislike/dislike or like/dislike).

The pair row is the unit of contention. It is read ``FOR UPDATE`` and written
with an ORM version counter; a concurrent creation trips the unique pair
constraint. Either conflict rolls the attempt back and the whole swipe is
replayed, so of two racing likes exactly one observes the other and accepts.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.core.clock import Clock, clock as default_clock
from app.core.exceptions import AppError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.firebase import firebase_service
from app.models.chat import NotificationKind
from app.models.match import Match, MatchMode, SwipeAction, pair_key
from app.models.user import User
from app.services.entitlements import EntitlementAction, EntitlementService
from app.services.notifications import NotificationEmitter, NotificationEvent, Outbox


logger = logging.getLogger(__name__)

T = TypeVar("T")

MATCH_MESSAGE = "It's a Match!"
ALREADY_MATCHED_MESSAGE = "Already matched!"


@dataclass(frozen=True)
class SwipeResult:
    is_match: bool
    match_id: Optional[uuid.UUID] = None
    already_matched: bool = False
    created_match: bool = False
    message: Optional[str] = None


def parse_action(action: str) -> str:
    try:
        return SwipeAction(action).value
    except ValueError:
        raise ValidationError("Action must be 'like' or 'dislike'.")


def parse_mode(mode: Optional[str]) -> str:
    if mode is None:
        return MatchMode.DATING.value
    try:
        return MatchMode(mode).value
    except ValueError:
        raise ValidationError("Mode must be 'dating' or 'friends'.")


class MatchingService:
    """Swipes and responses for one request, bound to its database session."""

    def __init__(
        self,
        db: AsyncSession,
        emitter: NotificationEmitter,
        clock: Clock = default_clock,
    ):
        self.db = db
        self.emitter = emitter
        self.clock = clock
        self.entitlements = EntitlementService(db, clock)

    # ==================== Operations ====================

    async def swipe(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        action: str,
        mode: Optional[str] = None,
    ) -> SwipeResult:
        """Record ``actor``'s like or dislike on ``target``; promote the pair on mutual like."""
        if actor_id == target_id:
            raise ForbiddenError("Cannot swipe on yourself.")
        action = parse_action(action)
        mode = parse_mode(mode)

        async def attempt(outbox: Outbox) -> SwipeResult:
            actor = await self.entitlements.get_user(actor_id, for_update=True)
            target = await self.entitlements.get_user(target_id)
            low, high = pair_key(actor_id, target_id)
            pair = await self._lock_pair(Match.user_low_id == low, Match.user_high_id == high)
            return await self._apply(outbox, actor, target, pair, action, mode)

        return await self._transact(attempt)

    async def respond(self, match_id: uuid.UUID, actor_id: uuid.UUID, action: str) -> SwipeResult:
        """Answer an incoming like on a known pair. Same transition as ``swipe``."""
        action = parse_action(action)

        async def attempt(outbox: Outbox) -> SwipeResult:
            # Unlocked lookup first: locks are always taken actor row, then pair row
            pair = await self.db.get(Match, match_id)
            if pair is None:
                raise NotFoundError("Match not found")
            if not pair.has_participant(actor_id):
                raise ForbiddenError("Not authorized")

            actor = await self.entitlements.get_user(actor_id, for_update=True)
            target = await self.entitlements.get_user(pair.other_user(actor_id))
            pair = await self._lock_pair(Match.id == match_id)
            return await self._apply(outbox, actor, target, pair, action, pair.mode)

        return await self._transact(attempt)

    async def _lock_pair(self, *criteria) -> Optional[Match]:
        result = await self.db.execute(
            select(Match)
            .where(*criteria)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ==================== Transition ====================

    async def _apply(
        self,
        outbox: Outbox,
        actor: User,
        target: User,
        pair: Optional[Match],
        action: str,
        mode: str,
    ) -> SwipeResult:
        if pair is not None and pair.is_accepted:
            return SwipeResult(
                is_match=True,
                match_id=pair.id,
                already_matched=True,
                message=ALREADY_MATCHED_MESSAGE,
            )

        is_like = action == SwipeAction.LIKE.value
        if is_like:
            decision = await self.entitlements.evaluate(actor, EntitlementAction.SWIPE)
            decision.raise_if_denied()

        if pair is None:
            low, high = pair_key(actor.id, target.id)
            # Mode is fixed by whichever swipe creates the pair
            pair = Match(id=uuid.uuid4(), user_low_id=low, user_high_id=high, mode=mode, swipes=[])
            self.db.add(pair)

        is_match = is_like and pair.swipe_of(target.id) == SwipeAction.LIKE.value
        pair.record_swipe(actor.id, action)

        if is_match:
            pair.is_accepted = True
            pair.matched_at = self.clock.now()
            outbox.add(
                NotificationEvent(
                    recipient=target.id,
                    sender=actor.id,
                    kind=NotificationKind.MATCH.value,
                    content=f"It's a Match! You and {actor.name} are ready to connect.",
                    related_id=pair.id,
                )
            )
            outbox.add(
                NotificationEvent(
                    recipient=actor.id,
                    sender=target.id,
                    kind=NotificationKind.MATCH.value,
                    content=f"It's a Match! You and {target.name} are ready to connect.",
                    related_id=pair.id,
                )
            )

        if is_like:
            self.entitlements.record_swipe(actor)

        await self.db.flush()

        return SwipeResult(
            is_match=is_match,
            match_id=pair.id,
            created_match=is_match,
            message=MATCH_MESSAGE if is_match else None,
        )

    # ==================== Transaction handling ====================

    async def _transact(self, attempt: Callable[[Outbox], Awaitable[T]]) -> T:
        """
        Run ``attempt`` in its own transaction, replaying it on pair conflicts.
        Queued notifications are delivered only after a successful commit.
        """
        retries = max(1, settings.SWIPE_CONFLICT_RETRIES)
        for attempt_no in range(1, retries + 1):
            outbox = Outbox(self.emitter)
            try:
                result = await attempt(outbox)
                await self.db.commit()
            except (IntegrityError, StaleDataError) as e:
                await self.db.rollback()
                outbox.discard()
                logger.info("Pair conflict on attempt %d/%d: %s", attempt_no, retries, type(e).__name__)
                continue
            except AppError:
                # Refusals happen before any pair write; keep a premium downgrade if one ran
                await self.db.commit()
                raise
            except Exception:
                await self.db.rollback()
                raise

            await outbox.flush()
            if isinstance(result, SwipeResult) and result.created_match:
                await self._open_chat_room(result.match_id)
            return result

        raise ConflictError("The match was updated concurrently. Please try again.")

    async def _open_chat_room(self, match_id: uuid.UUID) -> None:
        if not firebase_service.is_available:
            return
        pair = await self.db.get(Match, match_id)
        if pair is None:
            return
        try:
            firebase_service.create_chat_room(
                room_id=pair.room_id,
                match_id=str(pair.id),
                user1_id=str(pair.user_low_id),
                user2_id=str(pair.user_high_id),
            )
        except Exception:
            # Log error but don't fail the match
            logger.exception("Firebase chat creation failed for match %s", match_id)
