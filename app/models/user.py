from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, JSON, Uuid
import uuid
import enum

from app.core.clock import utcnow
from app.db.session import Base


class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


class VerificationTier(int, enum.Enum):
    BASIC = 1
    VERIFIED = 2
    PREMIUM = 3


class User(Base):
    """Community member. Profile editing lives in the profile service."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    handle = Column(String(50), unique=True, nullable=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)

    # Public profile summary
    age = Column(Integer, nullable=True)
    bio = Column(Text, nullable=True)
    profile_photo = Column(String(500), nullable=True)
    photos = Column(JSON, default=list)  # Array of photo URLs
    has_completed_onboarding = Column(Boolean, default=False)

    # Premium / Subscription
    is_premium = Column(Boolean, default=False)
    subscription_tier = Column(String(20), default=SubscriptionTier.FREE.value)  # free, premium
    premium_since = Column(DateTime(timezone=True), nullable=True)
    premium_expires_at = Column(DateTime(timezone=True), nullable=True)
    verification_tier = Column(Integer, default=VerificationTier.BASIC.value)
    revenuecat_user_id = Column(String(255), nullable=True)

    # Daily swipe window (free tier)
    daily_swipe_count = Column(Integer, default=0)
    last_swipe_date = Column(String(10), nullable=True)  # "YYYY-MM-DD"

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
