from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Uuid
import uuid
import enum

from app.core.clock import utcnow
from app.db.session import Base


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"


class NotificationKind(str, enum.Enum):
    # Post like/comment events are produced by the feed service through the same emitter
    LIKE = "like"
    COMMENT = "comment"
    MATCH = "match"
    MESSAGE = "message"
    SYSTEM = "system"


class Message(Base):
    """Chat message. Rooms are keyed by the pair's room id (see app.models.match.room_key)."""

    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_room_id = Column(String(120), nullable=False, index=True)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(10), default=MessageType.TEXT.value)  # text, image, location
    attachment_url = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


class Notification(Base):
    """In-app notification written by the notification emitter."""

    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    kind = Column(String(20), nullable=False)  # like, comment, match, message, system
    content = Column(Text, nullable=False)
    related_id = Column(Uuid(as_uuid=True), nullable=True)  # Match, Post or Message id
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
