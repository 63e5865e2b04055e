from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid
import uuid
import enum

from app.core.clock import utcnow
from app.db.session import Base


class AdventureCategory(str, enum.Enum):
    HIKING = "Hiking"
    SURFING = "Surfing"
    CLIMBING = "Climbing"
    PHOTOGRAPHY = "Photography"
    FISHING = "Fishing"
    CAMPING = "Camping"
    ROAD_TRIP = "Road Trip"
    OTHER = "Other"


class Post(Base):
    """Feed post. Counted against the free tier post allowance."""

    __tablename__ = "posts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    author_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)  # uploaded by the media service
    location = Column(String(200), nullable=True)  # "Big Sur, CA"
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Adventure(Base):
    """Group adventure. Free users may create one per calendar month."""

    __tablename__ = "adventures"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(30), default=AdventureCategory.OTHER.value)
    location_name = Column(String(200), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    max_participants = Column(Integer, default=6)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
