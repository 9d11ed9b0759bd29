import logging
import uuid
from typing import List, Optional

from .model_catalog import ModelCatalog
from .session_store import Message, Session, SessionStore, new_message, utc_timestamp

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Welcome to the chat! How can I assist you today?"
DEFAULT_TITLE = "New Chat"


class SessionManager:
    def __init__(self, store: SessionStore, models: ModelCatalog):
        self.store = store
        self.models = models

    def create_session(self, title: Optional[str] = None, model_id: Optional[str] = None) -> Session:
        """Create and save a session seeded with a welcome message."""
        timestamp = utc_timestamp()
        welcome = new_message("system", WELCOME_MESSAGE)
        welcome["timestamp"] = timestamp
        session = {
            "id": str(uuid.uuid4()),
            "title": title or DEFAULT_TITLE,
            "messages": [welcome],
            "createdAt": timestamp,
            "updatedAt": timestamp,
            "modelId": model_id or self.models.get_default_model().id,
        }
        self.store.save(session)
        logger.info(f"Created new session: {session['id']}")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.store.get_by_id(session_id)

    def list_sessions(self) -> List[Session]:
        return self.store.list()

    def update_session(
        self, session_id: str, title: Optional[str] = None, model_id: Optional[str] = None
    ) -> Optional[Session]:
        """Update title and/or model. Returns None if the session does not exist."""
        session = self.store.get_by_id(session_id)
        if session is None:
            return None
        if title is not None:
            session["title"] = title
        if model_id is not None:
            session["modelId"] = model_id
        session["updatedAt"] = utc_timestamp()
        self.store.save(session)
        return session

    def delete_session(self, session_id: str) -> bool:
        deleted = self.store.delete(session_id)
        if deleted:
            logger.info(f"Deleted session: {session_id}")
        return deleted

    def append_message(self, session_id: str, message: Message) -> Optional[Session]:
        return self.store.append_message(session_id, message)

    def import_sessions(self, sessions: List[Session]) -> int:
        for session in sessions:
            self.store.save(session)
        logger.info(f"Imported {len(sessions)} sessions")
        return len(sessions)
