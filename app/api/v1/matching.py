from fastapi import APIRouter, Depends, Query
from typing import List
import logging
import uuid

from app.db.redis import RedisService
from app.core.dependencies import (
    get_current_user,
    get_match_projections,
    get_matching_service,
    get_redis_service,
)
from app.models.user import User
from app.services.matching import MatchingService
from app.services.projections import MatchProjections
from app.schemas.match import (
    SwipeCreate,
    SwipeResponse,
    RespondRequest,
    UserSummary,
    MatchWithUser,
    MyLikesResponse,
    IncomingLike,
    ChatThread,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matching", tags=["Matching"])


@router.get("", response_model=List[MatchWithUser])
async def get_matches(
    current_user: User = Depends(get_current_user),
    projections: MatchProjections = Depends(get_match_projections),
):
    """Get all accepted matches for current user."""
    return await projections.accepted_matches(current_user.id)


@router.get("/suggestions", response_model=List[UserSummary])
async def get_suggestions(
    mode: str = Query("dating", pattern="^(dating|friends)$"),
    current_user: User = Depends(get_current_user),
    projections: MatchProjections = Depends(get_match_projections),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Get profiles to swipe on.
    Excludes:
    - Own profile
    - Anyone already swiped on or matched (either direction)
    - Users who have not completed onboarding
    Dating mode only shows users with at least one photo.
    """
    user_id = str(current_user.id)
    cached = await redis.get_cached_suggestions(user_id, mode)
    if cached is not None:
        return cached

    suggestions = await projections.suggestions(current_user.id, mode)
    await redis.cache_suggestions(
        user_id, mode, [summary.model_dump(mode="json") for summary in suggestions]
    )
    return suggestions


@router.post("/swipe", response_model=SwipeResponse)
async def swipe(
    swipe_data: SwipeCreate,
    current_user: User = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Record a swipe (like or dislike).
    If both users liked each other, the pair becomes a match.
    Free users are limited to a few likes per day.
    """
    actor_id = current_user.id
    result = await matching.swipe(
        actor_id=actor_id,
        target_id=swipe_data.target_user_id,
        action=swipe_data.action,
        mode=swipe_data.mode,
    )
    await _invalidate_decks(redis, actor_id, swipe_data.target_user_id)

    return SwipeResponse(
        is_match=result.is_match,
        match_id=result.match_id,
        message=result.message,
    )


@router.get("/likes", response_model=MyLikesResponse)
async def get_my_likes(
    current_user: User = Depends(get_current_user),
    projections: MatchProjections = Depends(get_match_projections),
):
    """Users I liked, grouped into accepted, pending and rejected."""
    return await projections.my_likes(current_user.id)


@router.get("/incoming", response_model=List[IncomingLike])
async def get_incoming_likes(
    current_user: User = Depends(get_current_user),
    projections: MatchProjections = Depends(get_match_projections),
):
    """Users who liked me and are waiting for my answer."""
    return await projections.incoming_likes(current_user.id)


@router.get("/dating-chats", response_model=List[ChatThread])
async def get_dating_chats(
    current_user: User = Depends(get_current_user),
    projections: MatchProjections = Depends(get_match_projections),
):
    """Dating matches with their last message and unread count."""
    return await projections.dating_chats(current_user.id)


@router.put("/{match_id}/respond", response_model=SwipeResponse)
async def respond_to_like(
    match_id: uuid.UUID,
    response_data: RespondRequest,
    current_user: User = Depends(get_current_user),
    matching: MatchingService = Depends(get_matching_service),
    redis: RedisService = Depends(get_redis_service),
):
    """Accept (like) or reject (dislike) an incoming like."""
    actor_id = current_user.id
    result = await matching.respond(match_id, actor_id, response_data.action)
    await _invalidate_decks(redis, actor_id)

    return SwipeResponse(
        is_match=result.is_match,
        match_id=result.match_id,
        message=result.message,
    )


async def _invalidate_decks(redis: RedisService, *user_ids: uuid.UUID) -> None:
    try:
        await redis.invalidate_suggestions(*(str(user_id) for user_id in user_ids))
    except Exception:
        # Stale decks expire on their own
        logger.warning("Suggestions cache invalidation failed", exc_info=True)
