"""
Read projections over the pair store: suggestions, incoming likes, my likes,
accepted matches and dating chat threads.
"""

from typing import Dict, Iterable, List, Optional, Set
import uuid

from sqlalchemy import and_, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import as_utc
from app.models.chat import Message
from app.models.match import Match, MatchMode, SwipeAction
from app.models.user import User
from app.schemas.match import (
    ChatThread,
    IncomingLike,
    LastMessage,
    LikeEntry,
    MatchWithUser,
    MyLikesResponse,
    UserSummary,
)


class MatchProjections:
    """Derived views computed from the pair and message stores."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _pairs_for(self, user_id: uuid.UUID, *criteria) -> List[Match]:
        result = await self.db.execute(
            select(Match)
            .where(
                or_(Match.user_low_id == user_id, Match.user_high_id == user_id),
                *criteria,
            )
            .order_by(Match.created_at.desc())
        )
        return list(result.scalars().all())

    async def _users_by_id(self, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}

    # ==================== Suggestions ====================

    async def paired_user_ids(self, user_id: uuid.UUID) -> Set[uuid.UUID]:
        """Everyone the user already shares a pair with, in any state."""
        pairs = await self._pairs_for(user_id)
        return {pair.other_user(user_id) for pair in pairs}

    async def suggestions(self, user_id: uuid.UUID, mode: str) -> List[UserSummary]:
        """
        Candidates to swipe on.
        Excludes the user, anyone already paired with them and users who
        have not finished onboarding. Dating mode requires a photo.
        """
        excluded_ids = await self.paired_user_ids(user_id)
        excluded_ids.add(user_id)

        filters = [
            User.has_completed_onboarding == True,
            User.is_active == True,
            not_(User.id.in_(excluded_ids)),
        ]
        if mode == MatchMode.DATING.value:
            filters.append(
                or_(
                    and_(User.profile_photo.is_not(None), User.profile_photo != ""),
                    func.coalesce(func.json_array_length(User.photos), 0) > 0,
                )
            )

        result = await self.db.execute(
            select(User).where(*filters).limit(settings.SUGGESTIONS_LIMIT)
        )
        return [UserSummary.model_validate(user) for user in result.scalars().all()]

    # ==================== Likes ====================

    async def incoming_likes(self, user_id: uuid.UUID) -> List[IncomingLike]:
        """Likes from others that the user has not answered yet."""
        pairs = await self._pairs_for(user_id, Match.is_accepted == False)
        waiting = [
            pair for pair in pairs
            if pair.swipe_of(pair.other_user(user_id)) == SwipeAction.LIKE.value
            and pair.swipe_of(user_id) is None
        ]
        users = await self._users_by_id(pair.other_user(user_id) for pair in waiting)

        results = []
        for pair in waiting:
            other = users.get(pair.other_user(user_id))
            if other is None:
                continue
            results.append(
                IncomingLike(
                    match_id=pair.id,
                    user=UserSummary.model_validate(other),
                    created_at=pair.created_at,
                )
            )
        return results

    async def my_likes(self, user_id: uuid.UUID) -> MyLikesResponse:
        """Pairs the user liked, split into accepted, rejected and pending."""
        pairs = await self._pairs_for(user_id)
        liked = [pair for pair in pairs if pair.swipe_of(user_id) == SwipeAction.LIKE.value]
        users = await self._users_by_id(pair.other_user(user_id) for pair in liked)

        response = MyLikesResponse()
        for pair in liked:
            other = users.get(pair.other_user(user_id))
            if other is None:
                continue
            entry = LikeEntry(
                match_id=pair.id,
                user=UserSummary.model_validate(other),
                matched_at=pair.matched_at,
                created_at=pair.created_at,
            )
            if pair.is_accepted:
                response.accepted.append(entry)
            elif pair.swipe_of(other.id) == SwipeAction.DISLIKE.value:
                response.rejected.append(entry)
            else:
                response.pending.append(entry)
        return response

    # ==================== Matches ====================

    async def accepted_matches(self, user_id: uuid.UUID, mode: Optional[str] = None) -> List[MatchWithUser]:
        criteria = [Match.is_accepted == True]
        if mode is not None:
            criteria.append(Match.mode == mode)
        pairs = await self._pairs_for(user_id, *criteria)
        users = await self._users_by_id(pair.other_user(user_id) for pair in pairs)

        matches = []
        for pair in pairs:
            other = users.get(pair.other_user(user_id))
            if other is None:
                continue
            matches.append(
                MatchWithUser(
                    match_id=pair.id,
                    mode=pair.mode,
                    user=UserSummary.model_validate(other),
                    room_id=pair.room_id,
                    matched_at=pair.matched_at,
                )
            )
        return matches

    async def dating_chats(self, user_id: uuid.UUID) -> List[ChatThread]:
        """
        One thread per accepted dating match with its last message and unread count.
        Newest activity first.
        """
        threads = []
        for match in await self.accepted_matches(user_id, mode=MatchMode.DATING.value):
            last_result = await self.db.execute(
                select(Message)
                .where(Message.chat_room_id == match.room_id)
                .order_by(Message.created_at.desc())
                .limit(1)
            )
            last_message = last_result.scalar_one_or_none()

            unread_result = await self.db.execute(
                select(func.count())
                .select_from(Message)
                .where(
                    Message.chat_room_id == match.room_id,
                    Message.sender_id != user_id,
                    Message.is_read == False,
                )
            )

            threads.append(
                ChatThread(
                    match_id=match.match_id,
                    room_id=match.room_id,
                    other_user=match.user,
                    matched_at=match.matched_at,
                    last_message=LastMessage.model_validate(last_message) if last_message else None,
                    unread_count=unread_result.scalar_one(),
                )
            )

        threads.sort(key=lambda thread: as_utc(thread.last_activity), reverse=True)
        return threads
