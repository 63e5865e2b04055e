from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime, timezone
from uuid import UUID


# ==================== Swipe Schemas ====================

class SwipeCreate(BaseModel):
    """Schema for creating a swipe."""
    target_user_id: UUID
    action: str = Field(..., pattern="^(like|dislike)$")
    mode: Optional[str] = Field(None, pattern="^(dating|friends)$")


class RespondRequest(BaseModel):
    """Answer to an incoming like."""
    action: str = Field(..., pattern="^(like|dislike)$")


class SwipeResponse(BaseModel):
    """Schema for swipe response."""
    is_match: bool = False  # True if the pair is (now) matched
    match_id: Optional[UUID] = None
    message: Optional[str] = None


# ==================== User Summaries ====================

class UserSummary(BaseModel):
    """Public card shown in suggestions, likes and matches."""
    id: UUID
    name: str
    handle: Optional[str] = None
    age: Optional[int] = None
    bio: Optional[str] = None
    profile_photo: Optional[str] = None
    photos: List[str] = []
    is_premium: bool = False

    @validator("photos", pre=True)
    def default_photos(cls, v):
        return v or []

    @validator("is_premium", pre=True)
    def default_premium(cls, v):
        return bool(v)

    class Config:
        from_attributes = True


# ==================== Likes & Matches ====================

class IncomingLike(BaseModel):
    """Someone liked the current user, waiting for an answer."""
    match_id: UUID
    user: UserSummary
    created_at: datetime


class LikeEntry(BaseModel):
    """A pair the current user liked."""
    match_id: UUID
    user: UserSummary
    matched_at: Optional[datetime] = None
    created_at: datetime


class MyLikesResponse(BaseModel):
    """Likes grouped by the other side's answer."""
    accepted: List[LikeEntry] = []
    pending: List[LikeEntry] = []
    rejected: List[LikeEntry] = []


class MatchWithUser(BaseModel):
    """Accepted match with the other user's card."""
    match_id: UUID
    mode: str
    user: UserSummary
    room_id: str
    matched_at: Optional[datetime] = None


# ==================== Chat Threads ====================

class LastMessage(BaseModel):
    content: str
    type: str = "text"
    sender_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


class ChatThread(BaseModel):
    """Dating chat summary for one match."""
    match_id: UUID
    room_id: str
    other_user: UserSummary
    matched_at: Optional[datetime] = None
    last_message: Optional[LastMessage] = None
    unread_count: int = 0

    @property
    def last_activity(self) -> datetime:
        if self.last_message is not None:
            return self.last_message.created_at
        return self.matched_at or datetime.min.replace(tzinfo=timezone.utc)
