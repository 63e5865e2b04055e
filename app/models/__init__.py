# Export all models for easy importing
from app.models.user import User, SubscriptionTier, VerificationTier
from app.models.match import Match, MatchMode, SwipeAction
from app.models.content import Post, Adventure
from app.models.chat import Message, Notification, NotificationKind

__all__ = [
    "User",
    "SubscriptionTier",
    "VerificationTier",
    "Match",
    "MatchMode",
    "SwipeAction",
    "Post",
    "Adventure",
    "Message",
    "Notification",
    "NotificationKind",
]
