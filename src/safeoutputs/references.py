"""Which temporary IDs does a message create, and which does it reference?"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .temporary_id import TEMPORARY_ID_PATTERN, is_temporary_id, normalize_temporary_id

TEXT_FIELDS = ("body", "title", "description")
ID_FIELDS = (
    "issue_number",
    "parent_issue_number",
    "sub_issue_number",
    "discussion_number",
    "pull_request_number",
    "content_number",
)
URL_FIELDS = ("item_url",)

# ".../issues/aw_abc123" or ".../issues/#aw_abc123"
_RE_URL_TRAILING_ID = re.compile(r"/#?(aw_[A-Za-z0-9]{4,8})$", re.IGNORECASE)


def _strip_hash(value: Any) -> str:
    text = str(value).strip()
    return text[1:] if text.startswith("#") else text


def get_created_temporary_id(message: Any) -> str | None:
    if not isinstance(message, Mapping):
        return None
    temp_id = message.get("temporary_id")
    if temp_id and is_temporary_id(str(temp_id)):
        return normalize_temporary_id(str(temp_id))
    return None


def extract_temporary_id_references(message: Any) -> set[str]:
    """Collect every temporary ID ``message`` points at.

    Malformed tokens are skipped silently; they stay in the text for the
    handler (and the humans reading its output) to deal with.
    """
    found: set[str] = set()
    pending: list[Any] = [message]
    while pending:
        current = pending.pop()
        if not isinstance(current, Mapping):
            continue

        for name in TEXT_FIELDS:
            value = current.get(name)
            if isinstance(value, str):
                for match in TEMPORARY_ID_PATTERN.finditer(value):
                    found.add(normalize_temporary_id(match.group(1)))

        for name in ID_FIELDS:
            value = current.get(name)
            if value is None:
                continue
            candidate = _strip_hash(value)
            if is_temporary_id(candidate):
                found.add(normalize_temporary_id(candidate))

        for name in URL_FIELDS:
            value = current.get(name)
            if not isinstance(value, str):
                continue
            text = value.strip()
            match = _RE_URL_TRAILING_ID.search(text)
            if match:
                found.add(normalize_temporary_id(match.group(1)))
                continue
            candidate = _strip_hash(text)
            if is_temporary_id(candidate):
                found.add(normalize_temporary_id(candidate))

        items = current.get("items")
        if isinstance(items, list):
            pending.extend(item for item in items if isinstance(item, Mapping))
    return found


__all__ = [
    "ID_FIELDS",
    "TEXT_FIELDS",
    "URL_FIELDS",
    "extract_temporary_id_references",
    "get_created_temporary_id",
]
