"""YAML export and import of chat history."""

from typing import List

import yaml

from .session_store import Session, is_valid_session_id, utc_timestamp

EXPORT_VERSION = "1.0"


def sessions_to_yaml(sessions: List[Session]) -> str:
    export = {
        "version": EXPORT_VERSION,
        "sessions": sessions,
        "exportedAt": utc_timestamp(),
    }
    return yaml.safe_dump(
        export, sort_keys=False, allow_unicode=True, indent=2, width=float("inf")
    )


def yaml_to_sessions(yaml_content: str) -> List[Session]:
    """
    Parse exported history back into sessions.

    Raises:
        ValueError: if the content is not valid YAML, has no ``sessions`` list
            or a session has an unusable id
    """
    try:
        parsed = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML: {e}") from e

    sessions = parsed.get("sessions") if isinstance(parsed, dict) else None
    if not isinstance(sessions, list) or not all(isinstance(s, dict) for s in sessions):
        raise ValueError("Failed to parse YAML: Invalid YAML format: missing sessions array")
    for session in sessions:
        if not is_valid_session_id(session.get("id")):
            raise ValueError(f"Failed to parse YAML: Invalid session id: {session.get('id')!r}")
    return sessions
