from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class IntentType(str, Enum):
    """Known safe-output types. Anything else maps to ``UNKNOWN``."""

    CREATE_ISSUE = "create_issue"
    UPDATE_ISSUE = "update_issue"
    CLOSE_ISSUE = "close_issue"
    ADD_COMMENT = "add_comment"
    ADD_LABELS = "add_labels"
    LINK_SUB_ISSUE = "link_sub_issue"
    CREATE_PULL_REQUEST = "create_pull_request"
    UPDATE_PULL_REQUEST = "update_pull_request"
    CREATE_DISCUSSION = "create_discussion"
    UPDATE_DISCUSSION = "update_discussion"
    CLOSE_DISCUSSION = "close_discussion"
    CREATE_PROJECT = "create_project"
    UPDATE_PROJECT = "update_project"
    NOOP = "noop"
    MISSING_TOOL = "missing_tool"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, value: str) -> IntentType:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def normalize_type_name(value: Any) -> str:
    return str(value).strip().replace("-", "_")


@dataclass
class SafeOutputMessage(Mapping[str, Any]):
    """One sanitized intent from the agent's output stream.

    ``index`` is the position in the original batch. The message behaves as a
    read-only mapping over ``fields`` so extraction helpers can treat it like
    the raw dict it came from.
    """

    index: int
    type: str
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, index: int, data: Mapping[str, Any]) -> SafeOutputMessage:
        fields = dict(data)
        type_name = normalize_type_name(fields.get("type", ""))
        fields["type"] = type_name
        return cls(index=index, type=type_name, fields=fields)

    @property
    def kind(self) -> IntentType:
        return IntentType.from_type(self.type)

    @property
    def body(self) -> str | None:
        value = self.fields.get("body")
        return value if isinstance(value, str) else None

    @property
    def repo(self) -> str | None:
        value = self.fields.get("repo")
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass
class MessageOutcome:
    index: int
    type: str
    success: bool
    error: str | None = None
    category: str | None = None
    repo: str | None = None
    temporary_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "index": self.index,
            "type": self.type,
            "success": self.success,
        }
        if self.error is not None:
            out["error"] = self.error
        if self.category is not None:
            out["category"] = self.category
        if self.repo is not None:
            out["repo"] = self.repo
        if self.temporary_id is not None:
            out["temporary_id"] = self.temporary_id
        if self.payload:
            out["result"] = self.payload
        return out


@dataclass
class BatchSummary:
    order: list[int]
    outcomes: list[MessageOutcome]
    cycle: list[int] = field(default_factory=list)
    parse_errors: list[dict[str, Any]] = field(default_factory=list)
    temporary_ids: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.parse_errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": {
                "processed": len(self.outcomes),
                "succeeded": self.succeeded,
                "failed": self.failed,
                "parse_errors": len(self.parse_errors),
            },
            "order": list(self.order),
            "cycle": list(self.cycle),
            "results": [o.to_dict() for o in self.outcomes],
            "parse_errors": list(self.parse_errors),
            "temporary_ids": dict(self.temporary_ids),
        }


__all__ = [
    "BatchSummary",
    "IntentType",
    "MessageOutcome",
    "SafeOutputMessage",
    "normalize_type_name",
]
