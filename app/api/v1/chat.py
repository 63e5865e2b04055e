from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from uuid import UUID
import logging

from app.db.session import get_db
from app.core.dependencies import get_current_user, get_entitlement_service
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.firebase import firebase_service
from app.models.chat import Message, MessageType, NotificationKind
from app.models.match import MatchMode, room_key
from app.models.user import User
from app.services.entitlements import EntitlementAction, EntitlementService
from app.services.notifications import (
    NotificationEmitter,
    NotificationEvent,
    Outbox,
    get_notification_emitter,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])

PAGE_SIZE = 30


# ==================== Schemas ====================

class MessageCreate(BaseModel):
    """Message to another user. The room is derived from the pair and mode."""
    receiver_id: UUID
    content: str = Field(..., min_length=1, max_length=4000)
    type: MessageType = MessageType.TEXT
    mode: MatchMode = MatchMode.FRIENDS
    attachment_url: Optional[str] = Field(None, max_length=500)


class MessageResponse(BaseModel):
    id: UUID
    chat_room_id: str
    sender_id: UUID
    content: str
    type: str
    attachment_url: Optional[str]
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


def require_room_member(room_id: str, user_id: UUID) -> None:
    """Room ids embed both participants: <prefix>_<user>_<user>."""
    if str(user_id) not in room_id.split("_")[1:]:
        raise ForbiddenError("Not a participant in this chat.")


# ==================== Endpoints ====================

@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    emitter: NotificationEmitter = Depends(get_notification_emitter),
):
    """Send a message. Messaging is a premium feature."""
    await entitlements.require(current_user, EntitlementAction.MESSAGE)

    if message_data.receiver_id == current_user.id:
        raise ForbiddenError("Cannot message yourself.")
    receiver = await db.get(User, message_data.receiver_id)
    if receiver is None:
        raise NotFoundError("User not found")

    message = Message(
        chat_room_id=room_key(current_user.id, receiver.id, message_data.mode.value),
        sender_id=current_user.id,
        content=message_data.content,
        type=message_data.type.value,
        attachment_url=message_data.attachment_url,
    )
    db.add(message)
    await db.commit()

    outbox = Outbox(emitter)
    outbox.add(
        NotificationEvent(
            recipient=receiver.id,
            sender=current_user.id,
            kind=NotificationKind.MESSAGE.value,
            content=f"New message from {current_user.name}",
            related_id=message.id,
        )
    )
    await outbox.flush()

    if firebase_service.is_available:
        try:
            firebase_service.publish_message(
                message.chat_room_id,
                {
                    "id": str(message.id),
                    "sender_id": str(message.sender_id),
                    "content": message.content,
                    "type": message.type,
                },
            )
        except Exception:
            logger.exception("Realtime relay failed for message %s", message.id)

    return message


@router.get("/{room_id}", response_model=List[MessageResponse])
async def get_messages(
    room_id: str,
    page: int = Query(1, ge=1),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Messages of a room in chronological order, newest page first."""
    require_room_member(room_id, current_user.id)

    result = await db.execute(
        select(Message)
        .where(Message.chat_room_id == room_id)
        .order_by(Message.created_at.desc())
        .offset(PAGE_SIZE * (page - 1))
        .limit(PAGE_SIZE)
    )
    messages = list(result.scalars().all())
    messages.reverse()
    return messages


@router.put("/{room_id}/read")
async def mark_messages_read(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark all messages from the other participant as read."""
    require_room_member(room_id, current_user.id)

    await db.execute(
        update(Message)
        .where(
            Message.chat_room_id == room_id,
            Message.sender_id != current_user.id,
            Message.is_read == False,
        )
        .values(is_read=True)
    )
    await db.commit()

    return {"success": True}
