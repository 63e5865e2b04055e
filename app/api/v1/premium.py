from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.config import settings
from app.db.session import get_db
from app.core.clock import Clock
from app.core.dependencies import get_clock, get_current_user, get_entitlement_service
from app.models.user import User, SubscriptionTier, VerificationTier
from app.services.entitlements import EntitlementService
from app.schemas.user import (
    PremiumStatusResponse,
    PremiumActivate,
    PremiumActivateResponse,
    UsageLimits,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/premium", tags=["Premium"])

UNLIMITED = -1


def add_months(value, months: int):
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    for day in (value.day, 30, 29, 28):
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    raise ValueError(f"Cannot shift {value} by {months} months")


@router.get("/status", response_model=PremiumStatusResponse)
async def get_premium_status(
    current_user: User = Depends(get_current_user),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """Subscription state and free tier usage (auto-expires lapsed premium)."""
    entitlements.expire_premium_if_due(current_user)
    is_premium = bool(current_user.is_premium)

    limits = UsageLimits(
        posts_used=await entitlements.count_posts(current_user.id),
        posts_limit=UNLIMITED if is_premium else settings.FREE_POST_LIMIT,
        swipes_used=entitlements.swipes_used_today(current_user),
        swipes_limit=UNLIMITED if is_premium else settings.FREE_SWIPE_LIMIT_PER_DAY,
        adventures_used=await entitlements.count_adventures_this_month(current_user.id),
        adventures_limit=UNLIMITED if is_premium else settings.FREE_ADVENTURE_LIMIT_PER_MONTH,
        can_message=is_premium,
    )

    return PremiumStatusResponse(
        is_premium=is_premium,
        subscription_tier=current_user.subscription_tier or SubscriptionTier.FREE.value,
        premium_since=current_user.premium_since,
        premium_expires_at=current_user.premium_expires_at,
        verification_tier=current_user.verification_tier or VerificationTier.BASIC.value,
        limits=limits,
    )


@router.post("/activate", response_model=PremiumActivateResponse)
async def activate_premium(
    activation: PremiumActivate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Activate premium after the store purchase succeeded on the client.
    Monthly plans run one month, yearly plans one year.
    """
    now = clock.now()
    months = 12 if activation.plan == "yearly" else 1

    current_user.is_premium = True
    current_user.subscription_tier = SubscriptionTier.PREMIUM.value
    current_user.premium_since = now
    current_user.premium_expires_at = add_months(now, months)
    current_user.revenuecat_user_id = activation.revenuecat_user_id
    current_user.verification_tier = VerificationTier.PREMIUM.value
    logger.info("Premium activated for user %s (%s)", current_user.id, activation.plan)
    await db.commit()

    return PremiumActivateResponse(
        is_premium=True,
        subscription_tier=current_user.subscription_tier,
        premium_since=current_user.premium_since,
        premium_expires_at=current_user.premium_expires_at,
        verification_tier=current_user.verification_tier,
    )


@router.post("/deactivate", response_model=PremiumActivateResponse)
async def deactivate_premium(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel premium and return to the free tier."""
    current_user.is_premium = False
    current_user.subscription_tier = SubscriptionTier.FREE.value
    current_user.premium_since = None
    current_user.premium_expires_at = None
    current_user.verification_tier = VerificationTier.BASIC.value
    logger.info("Premium deactivated for user %s", current_user.id)
    await db.commit()

    return PremiumActivateResponse(
        is_premium=False,
        subscription_tier=current_user.subscription_tier,
        verification_tier=current_user.verification_tier,
    )
