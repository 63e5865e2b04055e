from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


# ==================== Premium Schemas ====================

class UsageLimits(BaseModel):
    """Free tier allowances. -1 means unlimited."""
    posts_used: int
    posts_limit: int
    swipes_used: int
    swipes_limit: int
    adventures_used: int
    adventures_limit: int
    can_message: bool


class PremiumStatusResponse(BaseModel):
    """Subscription state and current usage."""
    is_premium: bool
    subscription_tier: str
    premium_since: Optional[datetime] = None
    premium_expires_at: Optional[datetime] = None
    verification_tier: int
    limits: UsageLimits


class PremiumActivate(BaseModel):
    """Activation after a successful store purchase."""
    revenuecat_user_id: str = Field(..., min_length=1, max_length=255)
    plan: str = Field("monthly", pattern="^(monthly|yearly)$")


class PremiumActivateResponse(BaseModel):
    is_premium: bool
    subscription_tier: str
    premium_since: Optional[datetime] = None
    premium_expires_at: Optional[datetime] = None
    verification_tier: int
