"""Turn the agent's NDJSON output into sanitized ``SafeOutputMessage`` objects.

Each line is handled on its own: parse as-is, otherwise parse the repaired
text, then strip dangerous keys. Lines that still fail, or that do not
describe an object with a ``type``, are dropped and reported.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .json_repair import repair_json
from .logging import get_logger
from .models import SafeOutputMessage
from .sanitizer import sanitize_structure

_PREVIEW_CHARS = 120


@dataclass
class ParseFailure:
    line_number: int
    error: str
    preview: str

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line_number, "error": self.error, "preview": self.preview}


@dataclass
class IngestResult:
    messages: list[SafeOutputMessage] = field(default_factory=list)
    failures: list[ParseFailure] = field(default_factory=list)
    repaired_lines: list[int] = field(default_factory=list)


def parse_safe_output_line(line: str) -> tuple[Any, bool]:
    """Return ``(value, repaired)``; raises ``ValueError`` when unparseable."""
    try:
        return json.loads(line), False
    except json.JSONDecodeError as first:
        repaired = repair_json(line)
        try:
            return json.loads(repaired), True
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON after repair: {exc.msg}") from first


def parse_safe_output_lines(lines: Iterable[str]) -> IngestResult:
    logger = get_logger()
    result = IngestResult()
    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        preview = line[:_PREVIEW_CHARS]
        try:
            value, repaired = parse_safe_output_line(line)
        except ValueError as exc:
            logger.warning(
                f"Failed to parse safe output line {line_number}: {exc}",
                operation="parse_failure",
                line=line_number,
            )
            result.failures.append(ParseFailure(line_number, str(exc), preview))
            continue

        value = sanitize_structure(value)
        if not isinstance(value, dict):
            error = f"expected a JSON object, got {type(value).__name__}"
            logger.warning(f"Skipping safe output line {line_number}: {error}", line=line_number)
            result.failures.append(ParseFailure(line_number, error, preview))
            continue
        type_value = value.get("type")
        if not isinstance(type_value, str) or not type_value.strip():
            error = "missing 'type' field"
            logger.warning(f"Skipping safe output line {line_number}: {error}", line=line_number)
            result.failures.append(ParseFailure(line_number, error, preview))
            continue

        if repaired:
            result.repaired_lines.append(line_number)
            logger.debug(f"Repaired malformed JSON on line {line_number}", line=line_number)
        index = len(result.messages)
        result.messages.append(SafeOutputMessage.from_mapping(index, value))
    return result


__all__ = ["IngestResult", "ParseFailure", "parse_safe_output_line", "parse_safe_output_lines"]
