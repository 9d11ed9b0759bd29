"""Utility functions for the ai_agent_chat package."""

import json
from collections.abc import Mapping
from typing import Any


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an attribute-style object.

    Args:
        obj: dict-like or object to probe
        name: field or attribute name
        default: value returned when the field is absent

    Returns:
        The field value, or ``default``
    """
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def to_text(value: Any) -> str:
    """Render a value as text: strings pass through, anything else becomes JSON."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
