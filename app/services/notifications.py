"""
Notification Emitter

Fire-and-forget delivery of in-app notifications. Services queue events on an
``Outbox`` while their transaction is open and flush it only after commit, so a
delivery failure can never undo the state change that produced the event.
"""

from dataclasses import dataclass, asdict
from typing import Callable, List, Optional
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.firebase import firebase_service
from app.models.chat import Notification, NotificationKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    recipient: uuid.UUID
    sender: uuid.UUID
    kind: str
    content: str
    related_id: Optional[uuid.UUID] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        return {key: str(value) if isinstance(value, uuid.UUID) else value for key, value in data.items()}


class NotificationEmitter:
    """
    Default sink: persists a Notification row in its own session and mirrors
    the event onto the realtime fabric when Firebase is configured.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        if session_factory is None:
            from app.db.session import async_session_maker
            session_factory = async_session_maker
        self.session_factory = session_factory

    async def emit(self, event: NotificationEvent) -> None:
        async with self.session_factory() as session:
            session.add(
                Notification(
                    recipient_id=event.recipient,
                    sender_id=event.sender,
                    kind=event.kind,
                    content=event.content,
                    related_id=event.related_id,
                )
            )
            await session.commit()

        if firebase_service.is_available:
            firebase_service.publish_notification(str(event.recipient), event.to_dict())


class Outbox:
    """Events collected during a transaction, published after it commits."""

    def __init__(self, emitter: NotificationEmitter):
        self.emitter = emitter
        self.pending: List[NotificationEvent] = []

    def add(self, event: NotificationEvent) -> None:
        if event.kind not in {kind.value for kind in NotificationKind}:
            raise ValueError(f"Unknown notification kind: {event.kind}")
        self.pending.append(event)

    def discard(self) -> None:
        """Drop events of a rolled back transaction."""
        self.pending = []

    async def flush(self) -> int:
        """Deliver queued events. Failures are logged and skipped."""
        events, self.pending = self.pending, []
        delivered = 0
        for event in events:
            try:
                await self.emitter.emit(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Notification delivery failed (kind=%s, recipient=%s)",
                    event.kind,
                    event.recipient,
                )
        return delivered


def get_notification_emitter() -> NotificationEmitter:
    """Dependency to get the notification emitter."""
    return NotificationEmitter()
