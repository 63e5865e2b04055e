from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.session import get_db
from app.db.redis import RedisService
from app.core.clock import Clock, clock
from app.core.security import verify_access_token
from app.models.user import User
from app.services.entitlements import EntitlementService
from app.services.matching import MatchingService
from app.services.notifications import NotificationEmitter, get_notification_emitter
from app.services.projections import MatchProjections


# Security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and returns the user object.
    """
    token = credentials.credentials
    token_data = verify_access_token(token)

    # Get user from database
    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def get_clock() -> Clock:
    """Dependency to get the wall clock."""
    return clock


def get_redis_service() -> RedisService:
    """Dependency to get Redis service."""
    return RedisService()


def get_entitlement_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> EntitlementService:
    """Dependency to get the entitlement evaluator for this request."""
    return EntitlementService(db, clock)


def get_matching_service(
    db: AsyncSession = Depends(get_db),
    emitter: NotificationEmitter = Depends(get_notification_emitter),
    clock: Clock = Depends(get_clock),
) -> MatchingService:
    """Dependency to get the swipe/match service for this request."""
    return MatchingService(db, emitter, clock)


def get_match_projections(db: AsyncSession = Depends(get_db)) -> MatchProjections:
    """Dependency to get the read projections."""
    return MatchProjections(db)
