"""Temporary IDs: placeholders for entities created later in the same batch.

An agent that wants to open an issue and then comment on it cannot know the
issue number up front, so it tags the creating message with
``temporary_id: aw_xxxx`` and refers to ``#aw_xxxx`` (or the bare token) in
later messages. Once the creating handler runs, the token is mapped to a
real ``{repo, number}`` and references are rewritten.

Format: ``aw_`` followed by 4 to 8 ASCII letters or digits, compared
case-insensitively; the canonical form is lowercase.
"""

from __future__ import annotations

import json
import os
import re
import secrets
import string
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .logging import get_logger

TEMPORARY_ID_PREFIX = "aw_"
GENERATED_ID_LENGTH = 8
ENV_TEMPORARY_ID_MAP = "SAFEOUTPUTS_TEMPORARY_ID_MAP"
ENV_TEMPORARY_PROJECT_MAP = "SAFEOUTPUTS_TEMPORARY_PROJECT_MAP"

_ALPHABET = string.ascii_letters + string.digits
_RE_TEMPORARY_ID = re.compile(r"aw_[A-Za-z0-9]{4,8}", re.IGNORECASE)
# Used to scan free text: "#aw_abc123" but not "#aw_abc123456" or "#aw_ab".
TEMPORARY_ID_PATTERN = re.compile(r"#(aw_[A-Za-z0-9]{4,8})\b", re.IGNORECASE)

FORMAT_HINT = (
    "Temporary IDs must be 'aw_' followed by 4 to 8 alphanumeric characters "
    "(A-Za-z0-9), for example 'aw_abc1' or 'aw_Test123'"
)


@dataclass(frozen=True)
class ResolvedReference:
    repo: str
    number: int

    def to_dict(self) -> dict[str, Any]:
        return {"repo": self.repo, "number": self.number}


TemporaryIdMap = dict[str, ResolvedReference]


@dataclass(frozen=True)
class IssueResolution:
    resolved: ResolvedReference | None
    was_temporary_id: bool
    error_message: str | None


def generate_temporary_id() -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(GENERATED_ID_LENGTH))
    return TEMPORARY_ID_PREFIX + suffix


def is_temporary_id(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return _RE_TEMPORARY_ID.fullmatch(value) is not None


def normalize_temporary_id(value: str) -> str:
    """Lowercase a token. Only meaningful after ``is_temporary_id`` passed."""
    return value.lower()


def _lookup(id_map: Mapping[str, Any], temp_id: str) -> Any:
    return id_map.get(normalize_temporary_id(temp_id))


def _coerce_reference(value: Any, default_repo: str) -> ResolvedReference | None:
    if isinstance(value, ResolvedReference):
        return value
    if isinstance(value, Mapping):
        repo = value.get("repo")
        number = value.get("number")
        try:
            return ResolvedReference(repo=str(repo or default_repo), number=int(number))
        except (TypeError, ValueError):
            return None
    if isinstance(value, bool):
        return None
    try:
        return ResolvedReference(repo=default_repo, number=int(value))
    except (TypeError, ValueError):
        return None


def coerce_temporary_id_map(raw: Mapping[str, Any], default_repo: str) -> TemporaryIdMap:
    """Normalize a loaded mapping; legacy bare numbers use ``default_repo``."""
    out: TemporaryIdMap = {}
    for key, value in raw.items():
        ref = _coerce_reference(value, default_repo)
        if ref is None:
            get_logger().debug("skipping unusable temporary id entry", key=str(key))
            continue
        out[normalize_temporary_id(str(key))] = ref
    return out


def load_temporary_id_map(raw: str | None = None, *, default_repo: str = "") -> TemporaryIdMap:
    """Parse a serialized map, by default from ``SAFEOUTPUTS_TEMPORARY_ID_MAP``.

    Invalid JSON is logged as a warning and yields an empty map.
    """
    text = raw if raw is not None else os.environ.get(ENV_TEMPORARY_ID_MAP)
    if not text:
        return {}
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        get_logger().warning("failed to parse temporary id map", error=str(exc))
        return {}
    if not isinstance(data, Mapping):
        get_logger().warning("temporary id map must be a JSON object")
        return {}
    return coerce_temporary_id_map(data, default_repo)


def serialize_temporary_id_map(id_map: Mapping[str, ResolvedReference]) -> str:
    return json.dumps({key: ref.to_dict() for key, ref in id_map.items()})


def replace_temporary_id_references(
    text: str, id_map: Mapping[str, ResolvedReference], current_repo: str
) -> str:
    """Rewrite ``#aw_x`` to ``#N`` (same repo) or ``owner/repo#N``.

    Unresolved references are left verbatim.
    """

    def _sub(match: re.Match[str]) -> str:
        ref = _lookup(id_map, match.group(1))
        if ref is None:
            return match.group(0)
        if ref.repo == current_repo:
            return f"#{ref.number}"
        return f"{ref.repo}#{ref.number}"

    return TEMPORARY_ID_PATTERN.sub(_sub, text)


def replace_temporary_id_references_legacy(text: str, id_map: Mapping[str, int]) -> str:
    def _sub(match: re.Match[str]) -> str:
        number = _lookup(id_map, match.group(1))
        return match.group(0) if number is None else f"#{number}"

    return TEMPORARY_ID_PATTERN.sub(_sub, text)


def has_unresolved_temporary_ids(text: str | None, id_map: Mapping[str, Any]) -> bool:
    if not text:
        return False
    return any(
        _lookup(id_map, match.group(1)) is None
        for match in TEMPORARY_ID_PATTERN.finditer(text)
    )


def resolve_issue_number(
    value: Any, id_map: Mapping[str, ResolvedReference], default_repo: str
) -> IssueResolution:
    """Turn an ``issue_number``-style field into a concrete reference."""
    if value is None:
        return IssueResolution(None, False, "Issue number is missing")

    raw = str(value).strip()
    candidate = raw[1:] if raw.startswith("#") else raw

    if is_temporary_id(candidate):
        ref = _lookup(id_map, candidate)
        if ref is None:
            return IssueResolution(
                None,
                True,
                f"Temporary ID '{normalize_temporary_id(candidate)}' not found in map. "
                "Ensure the creating message ran before this one.",
            )
        return IssueResolution(ref, True, None)

    if candidate.lower().startswith(TEMPORARY_ID_PREFIX):
        return IssueResolution(
            None, False, f"Invalid temporary ID format: '{raw}'. {FORMAT_HINT}"
        )

    try:
        number = int(candidate)
    except ValueError:
        return IssueResolution(None, False, f"Invalid issue number: {raw}")
    if number <= 0:
        return IssueResolution(None, False, f"Invalid issue number: {raw}")
    return IssueResolution(ResolvedReference(repo=default_repo, number=number), False, None)


def load_temporary_project_map(raw: str | None = None) -> dict[str, str]:
    text = raw if raw is not None else os.environ.get(ENV_TEMPORARY_PROJECT_MAP)
    if not text:
        return {}
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        get_logger().warning("failed to parse temporary project map", error=str(exc))
        return {}
    if not isinstance(data, Mapping):
        return {}
    return {normalize_temporary_id(str(k)): str(v) for k, v in data.items() if v}


def replace_temporary_project_references(text: str, project_map: Mapping[str, str]) -> str:
    def _sub(match: re.Match[str]) -> str:
        url = _lookup(project_map, match.group(1))
        return match.group(0) if url is None else str(url)

    return TEMPORARY_ID_PATTERN.sub(_sub, text)


__all__ = [
    "ENV_TEMPORARY_ID_MAP",
    "ENV_TEMPORARY_PROJECT_MAP",
    "FORMAT_HINT",
    "IssueResolution",
    "ResolvedReference",
    "TEMPORARY_ID_PATTERN",
    "TemporaryIdMap",
    "coerce_temporary_id_map",
    "generate_temporary_id",
    "has_unresolved_temporary_ids",
    "is_temporary_id",
    "load_temporary_id_map",
    "load_temporary_project_map",
    "normalize_temporary_id",
    "replace_temporary_id_references",
    "replace_temporary_id_references_legacy",
    "replace_temporary_project_references",
    "resolve_issue_number",
    "serialize_temporary_id_map",
]
