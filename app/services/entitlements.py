"""
Entitlement Evaluator

Decides whether a user may perform a gated action and tracks the free tier
usage windows. Premium users are never limited.

Free tier allowances:
- create_post: lifetime post count below FREE_POST_LIMIT
- swipe: likes committed today below FREE_SWIPE_LIMIT_PER_DAY
- message: premium only
- create_adventure: adventures created this calendar month below FREE_ADVENTURE_LIMIT_PER_MONTH
"""

from dataclasses import dataclass
from typing import Optional, Union
import enum
import logging
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import Clock, as_utc, clock as default_clock
from app.core.exceptions import ForbiddenError, NotFoundError
from app.models.content import Adventure, Post
from app.models.user import SubscriptionTier, User, VerificationTier


logger = logging.getLogger(__name__)


class EntitlementAction(str, enum.Enum):
    CREATE_POST = "create_post"
    SWIPE = "swipe"
    MESSAGE = "message"
    CREATE_ADVENTURE = "create_adventure"


POST_LIMIT_REASON = "Free users can create up to {limit} posts. Upgrade to Premium for unlimited posts!"
SWIPE_LIMIT_REASON = "Free users get {limit} swipes per day. Upgrade to Premium for unlimited swipes!"
MESSAGE_REASON = "Messaging is a Premium feature. Upgrade to connect with other nomads!"
ADVENTURE_LIMIT_REASON = "Free users can create {limit} adventure per month. Upgrade to Premium for unlimited!"


@dataclass(frozen=True)
class EntitlementWindow:
    """Daily swipe usage: the calendar day it belongs to and the likes counted on it."""

    day: Optional[str] = None
    count: int = 0

    @classmethod
    def of(cls, user: User) -> "EntitlementWindow":
        return cls(day=user.last_swipe_date, count=user.daily_swipe_count or 0)

    def used_on(self, day: str) -> int:
        """Likes counted on ``day``. A window from any other day counts as empty."""
        return self.count if self.day == day else 0

    def advance(self, day: str) -> "EntitlementWindow":
        """Window after one more like on ``day``."""
        if self.day != day:
            return EntitlementWindow(day=day, count=1)
        return EntitlementWindow(day=day, count=self.count + 1)

    def apply_to(self, user: User) -> None:
        user.daily_swipe_count = self.count
        user.last_swipe_date = self.day


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    reason: Optional[str] = None
    limit: Optional[int] = None
    used: Optional[int] = None

    def raise_if_denied(self) -> None:
        """Treat a denial as a hard stop."""
        if not self.allowed:
            raise ForbiddenError(
                detail=self.reason or "Upgrade to Premium to continue.",
                reason=self.reason,
                limit=self.limit,
                used=self.used,
                is_premium_required=True,
            )


ALLOWED = EntitlementDecision(allowed=True)


class EntitlementService:
    """Per-request evaluator bound to a database session."""

    def __init__(self, db: AsyncSession, clock: Clock = default_clock):
        self.db = db
        self.clock = clock

    async def get_user(self, user_id: uuid.UUID, for_update: bool = False) -> User:
        query = select(User).where(User.id == user_id)
        if for_update:
            # The request already holds this user in its identity map; reload the
            # counters once the row lock is granted
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    def expire_premium_if_due(self, user: User) -> bool:
        """
        Downgrade a user whose premium period has ended.
        Safe to call on every read; returns True only when a downgrade happened.
        """
        expires_at = as_utc(user.premium_expires_at)
        if not user.is_premium or expires_at is None or expires_at >= self.clock.now():
            return False

        user.is_premium = False
        user.subscription_tier = SubscriptionTier.FREE.value
        user.verification_tier = VerificationTier.BASIC.value
        user.premium_expires_at = None
        logger.info("Auto-expired premium for user %s", user.id)
        return True

    async def evaluate(
        self, user: Union[User, uuid.UUID], action: Union[EntitlementAction, str]
    ) -> EntitlementDecision:
        """Decide whether ``user`` may perform ``action`` right now."""
        if not isinstance(user, User):
            user = await self.get_user(user)

        self.expire_premium_if_due(user)
        if user.is_premium:
            return ALLOWED

        action = action.value if isinstance(action, EntitlementAction) else action

        if action == EntitlementAction.CREATE_POST.value:
            used = await self.count_posts(user.id)
            limit = settings.FREE_POST_LIMIT
            if used >= limit:
                return EntitlementDecision(False, POST_LIMIT_REASON.format(limit=limit), limit, used)
            return ALLOWED

        if action == EntitlementAction.SWIPE.value:
            used = self.swipes_used_today(user)
            limit = settings.FREE_SWIPE_LIMIT_PER_DAY
            if used >= limit:
                return EntitlementDecision(False, SWIPE_LIMIT_REASON.format(limit=limit), limit, used)
            return ALLOWED

        if action == EntitlementAction.MESSAGE.value:
            return EntitlementDecision(False, MESSAGE_REASON)

        if action == EntitlementAction.CREATE_ADVENTURE.value:
            used = await self.count_adventures_this_month(user.id)
            limit = settings.FREE_ADVENTURE_LIMIT_PER_MONTH
            if used >= limit:
                return EntitlementDecision(False, ADVENTURE_LIMIT_REASON.format(limit=limit), limit, used)
            return ALLOWED

        return ALLOWED

    async def require(self, user: Union[User, uuid.UUID], action: Union[EntitlementAction, str]) -> None:
        """Evaluate and raise ForbiddenError on denial."""
        decision = await self.evaluate(user, action)
        decision.raise_if_denied()

    def swipes_used_today(self, user: User) -> int:
        return EntitlementWindow.of(user).used_on(self.clock.today_key())

    def record_swipe(self, user: User) -> EntitlementWindow:
        """
        Count one committed like against today's window.
        Premium users are not metered.
        """
        window = EntitlementWindow.of(user)
        if user.is_premium:
            return window
        window = window.advance(self.clock.today_key())
        window.apply_to(user)
        return window

    async def count_posts(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Post).where(Post.author_id == user_id)
        )
        return result.scalar_one()

    async def count_adventures_this_month(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Adventure)
            .where(
                Adventure.creator_id == user_id,
                Adventure.created_at >= self.clock.month_start(),
            )
        )
        return result.scalar_one()
