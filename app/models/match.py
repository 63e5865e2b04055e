from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, JSON, Uuid, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from typing import Optional, Tuple
import uuid
import enum

from app.core.clock import utcnow
from app.db.session import Base


class SwipeAction(str, enum.Enum):
    LIKE = "like"
    DISLIKE = "dislike"


class MatchMode(str, enum.Enum):
    DATING = "dating"
    FRIENDS = "friends"


# Chat room prefixes per match mode
ROOM_PREFIXES = {
    MatchMode.DATING.value: "date",
    MatchMode.FRIENDS.value: "dm",
}


def pair_key(user_a: uuid.UUID, user_b: uuid.UUID) -> Tuple[uuid.UUID, uuid.UUID]:
    """Canonical ordering of an unordered user pair."""
    return (user_a, user_b) if str(user_a) < str(user_b) else (user_b, user_a)


def room_key(user_a: uuid.UUID, user_b: uuid.UUID, mode: str) -> str:
    """
    Chat room id for a pair.
    Deterministic for either argument order: date_<low>_<high> or dm_<low>_<high>.
    """
    low, high = pair_key(user_a, user_b)
    return f"{ROOM_PREFIXES[mode]}_{low}_{high}"


class Match(Base):
    """
    One record per unordered pair of users.
    Each side's swipe is embedded in ``swipes`` as {"user": <id>, "action": <like|dislike>}.
    """

    __tablename__ = "matches"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_low_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    user_high_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    mode = Column(String(10), nullable=False, default=MatchMode.DATING.value)  # dating, friends
    swipes = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    is_accepted = Column(Boolean, nullable=False, default=False)
    matched_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("user_low_id", "user_high_id", name="unique_pair"),)
    __mapper_args__ = {"version_id_col": version}

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_low_id, self.user_high_id)

    def other_user(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

    def swipe_of(self, user_id: uuid.UUID) -> Optional[str]:
        """Action recorded by ``user_id`` on this pair, if any."""
        for entry in self.swipes or []:
            if entry["user"] == str(user_id):
                return entry["action"]
        return None

    def record_swipe(self, user_id: uuid.UUID, action: str) -> None:
        """Overwrite the user's swipe in place, or append it."""
        # Reassign so the JSON column is flagged dirty
        entries = [dict(entry) for entry in self.swipes or []]
        for entry in entries:
            if entry["user"] == str(user_id):
                entry["action"] = action
                break
        else:
            entries.append({"user": str(user_id), "action": action})
        self.swipes = entries

    @property
    def room_id(self) -> str:
        return room_key(self.user_low_id, self.user_high_id, self.mode)
