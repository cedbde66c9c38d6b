from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jsonschema import Draft7Validator

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"
SCHEMA_VERSION = "safe-outputs/1"

_ISSUE_REF = {"type": ["integer", "string"]}
_NON_EMPTY = {"type": "string", "minLength": 1}


def _intent(title: str, required: list[str], properties: dict[str, Any]) -> dict[str, Any]:
    props: dict[str, Any] = {
        "type": {"type": "string"},
        "temporary_id": {"type": "string"},
        "repo": {"type": "string"},
    }
    props.update(properties)
    return {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"SafeOutputs intent schema {SCHEMA_VERSION}",
        "title": title,
        "type": "object",
        "required": ["type", *required],
        "properties": props,
    }


def get_schemas() -> dict[str, dict[str, Any]]:
    """Return a mapping of intent type -> JSON Schema dictionary.

    Only the fields a handler cannot work without are required; extra fields
    are always allowed. Types without an entry are not validated.
    """
    labels = {"type": "array", "items": {"type": "string"}}
    return {
        "create_issue": _intent(
            "CreateIssue",
            ["title"],
            {"title": _NON_EMPTY, "body": {"type": "string"}, "labels": labels},
        ),
        "update_issue": _intent(
            "UpdateIssue",
            [],
            {
                "issue_number": _ISSUE_REF,
                "title": {"type": "string"},
                "body": {"type": "string"},
                "status": {"enum": ["open", "closed"]},
            },
        ),
        "close_issue": _intent("CloseIssue", [], {"issue_number": _ISSUE_REF, "body": {"type": "string"}}),
        "add_comment": _intent("AddComment", ["body"], {"body": _NON_EMPTY, "issue_number": _ISSUE_REF}),
        "add_labels": _intent("AddLabels", ["labels"], {"labels": labels, "issue_number": _ISSUE_REF}),
        "link_sub_issue": _intent(
            "LinkSubIssue",
            ["parent_issue_number", "sub_issue_number"],
            {"parent_issue_number": _ISSUE_REF, "sub_issue_number": _ISSUE_REF},
        ),
        "create_discussion": _intent(
            "CreateDiscussion", ["title", "body"], {"title": _NON_EMPTY, "body": {"type": "string"}}
        ),
        "create_pull_request": _intent(
            "CreatePullRequest", ["title"], {"title": _NON_EMPTY, "body": {"type": "string"}}
        ),
        "create_project": _intent("CreateProject", ["title"], {"title": _NON_EMPTY}),
        "update_project": _intent(
            "UpdateProject",
            ["project"],
            {"project": _NON_EMPTY, "content_number": _ISSUE_REF, "item_url": {"type": "string"}},
        ),
    }


def validate_message(message: Mapping[str, Any]) -> list[str]:
    """Return human-readable validation errors for ``message`` (empty when valid)."""
    type_name = str(message.get("type", ""))
    schema = get_schemas().get(type_name)
    if schema is None:
        return []
    validator = Draft7Validator(schema)
    errors: list[str] = []
    for err in sorted(validator.iter_errors(dict(message)), key=lambda e: list(e.path)):
        location = ".".join(str(p) for p in err.path) or "<root>"
        errors.append(f"{type_name}: {location}: {err.message}")
    return errors


__all__ = ["SCHEMA_VERSION", "get_schemas", "validate_message"]
