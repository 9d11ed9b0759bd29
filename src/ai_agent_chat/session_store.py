"""
Session persistence.

Sessions are plain JSON-compatible dicts::

    {"id", "title", "messages": [{"id", "role", "content", "timestamp"}],
     "createdAt", "updatedAt", "modelId"}
"""

import json
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Session = Dict[str, Any]
Message = Dict[str, Any]

_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def is_valid_session_id(session_id: Any) -> bool:
    """Session ids double as file names, so only ``[A-Za-z0-9_-]`` is allowed."""
    return isinstance(session_id, str) and bool(_SESSION_ID.fullmatch(session_id))


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2025-01-01T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_message(role: str, content: str, message_id: Optional[str] = None) -> Message:
    return {
        "id": message_id or str(uuid.uuid4()),
        "role": role,
        "content": content,
        "timestamp": utc_timestamp(),
    }


class SessionStore(ABC):
    """Narrow interface to session storage."""

    @abstractmethod
    def get_by_id(self, session_id: str) -> Optional[Session]: ...

    @abstractmethod
    def save(self, session: Session) -> None: ...

    @abstractmethod
    def list(self) -> List[Session]:
        """All sessions, most recently updated first."""

    @abstractmethod
    def delete(self, session_id: str) -> bool: ...

    def append_message(self, session_id: str, message: Message) -> Optional[Session]:
        """Append a message and bump ``updatedAt``. Returns None if the session is missing."""
        session = self.get_by_id(session_id)
        if session is None:
            return None
        session.setdefault("messages", []).append(message)
        session["updatedAt"] = utc_timestamp()
        self.save(session)
        return session


class JsonFileSessionStore(SessionStore):
    """One ``<id>.json`` file per session under ``sessions_dir``."""

    def __init__(self, sessions_dir: str):
        self.sessions_dir = sessions_dir

    def _ensure_dir(self) -> None:
        os.makedirs(self.sessions_dir, exist_ok=True)

    def _path(self, session_id: str) -> Optional[str]:
        if not is_valid_session_id(session_id):
            return None
        return os.path.join(self.sessions_dir, f"{session_id}.json")

    def get_by_id(self, session_id: str) -> Optional[Session]:
        path = self._path(session_id)
        if path is None or not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading session {session_id}: {e}")
            return None

    def save(self, session: Session) -> None:
        path = self._path(session.get("id", ""))
        if path is None:
            raise ValueError(f"Invalid session id: {session.get('id')!r}")
        self._ensure_dir()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(session, f, ensure_ascii=False, indent=2)

    def list(self) -> List[Session]:
        self._ensure_dir()
        sessions = []
        for name in sorted(os.listdir(self.sessions_dir)):
            if not name.endswith(".json"):
                continue
            try:
                with open(os.path.join(self.sessions_dir, name), encoding="utf-8") as f:
                    sessions.append(json.load(f))
            except (OSError, ValueError) as e:
                logger.error(f"Error parsing session file {name}: {e}")
        # ISO-8601 UTC strings sort chronologically
        sessions.sort(key=lambda s: s.get("updatedAt", ""), reverse=True)
        return sessions

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if path is None or not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"Error deleting session {session_id}: {e}")
            return False
        return True
