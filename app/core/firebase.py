import firebase_admin
from firebase_admin import credentials, db, exceptions
from typing import Optional
import logging

from app.config import settings


logger = logging.getLogger(__name__)

# Global Firebase app instance
firebase_app: Optional[firebase_admin.App] = None


def init_firebase():
    """Initialize Firebase Admin SDK."""
    global firebase_app

    if firebase_app is not None:
        return firebase_app

    # Check if Firebase credentials are configured
    if not settings.FIREBASE_PROJECT_ID or not settings.FIREBASE_CLIENT_EMAIL:
        logger.info("Firebase credentials not configured - skipping initialization")
        return None

    # Create credentials from environment variables
    cred_dict = {
        "type": "service_account",
        "project_id": settings.FIREBASE_PROJECT_ID,
        "private_key": settings.FIREBASE_PRIVATE_KEY.replace("\\n", "\n"),
        "client_email": settings.FIREBASE_CLIENT_EMAIL,
        "token_uri": "https://oauth2.googleapis.com/token",
    }

    try:
        cred = credentials.Certificate(cred_dict)
        firebase_app = firebase_admin.initialize_app(
            cred,
            {
                "databaseURL": f"https://{settings.FIREBASE_PROJECT_ID}-default-rtdb.firebaseio.com"
            },
        )
        logger.info("Firebase initialized")
        return firebase_app
    except (ValueError, exceptions.FirebaseError) as e:
        logger.error("Firebase initialization failed: %s", e)
        return None


class FirebaseService:
    """
    Publisher for the Firebase Realtime Database fabric.
    Chat relay and push delivery listen on these paths.
    """

    @property
    def is_available(self) -> bool:
        return firebase_app is not None

    def create_chat_room(self, room_id: str, match_id: str, user1_id: str, user2_id: str) -> str:
        """
        Open a chat room for a new match.
        Returns the chat room ID.
        """
        ref = db.reference(f"chats/{room_id}")
        ref.update(
            {
                "metadata": {
                    "match_id": match_id,
                    "created_at": {".sv": "timestamp"},
                    "user1_id": user1_id,
                    "user2_id": user2_id,
                },
                "typing": {user1_id: False, user2_id: False},
            }
        )
        return room_id

    def publish_notification(self, recipient_id: str, payload: dict) -> str:
        """
        Push a notification event onto the recipient's feed.
        Returns the event key.
        """
        ref = db.reference(f"notifications/{recipient_id}")
        event_ref = ref.push({**payload, "timestamp": {".sv": "timestamp"}})
        return event_ref.key

    def publish_message(self, room_id: str, message: dict) -> str:
        """Relay a stored chat message to room listeners."""
        ref = db.reference(f"chats/{room_id}/messages")
        message_ref = ref.push({**message, "timestamp": {".sv": "timestamp"}})
        return message_ref.key


# Singleton instance
firebase_service = FirebaseService()
