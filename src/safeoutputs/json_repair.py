"""Best-effort repair of malformed JSON emitted by agents.

``repair_json`` is an ordered list of regex rewrites, not a parser. Each step
assumes the normalization done by the steps before it, so the order below is
part of the contract. The output is not guaranteed to parse; callers try
``json.loads`` on the result and drop the line when it still fails.

Known limitation: braces and brackets are balanced independently, so input
that is missing both closers (``{"items": ["a", "b"``) comes out as
``{"items": ["a", "b"}]``.
"""

from __future__ import annotations

import re

_CONTROL_ESCAPES = {
    0x08: "\\b",
    0x09: "\\t",
    0x0A: "\\n",
    0x0C: "\\f",
    0x0D: "\\r",
}

_RE_CONTROL = re.compile(r"[\x00-\x1f]")
_RE_BARE_KEY = re.compile(r"([{,]\s*)([a-zA-Z_$][a-zA-Z0-9_$]*)\s*:")
_RE_QUOTED_SPAN = re.compile(r'"([^"\\]*)"')
_RE_EMBEDDED_QUOTES = re.compile(r'"([^"]*)"([^":,}\]]*)"([^"]*)"(\s*[,:}\]])')
_RE_ARRAY_CLOSED_BY_BRACE = re.compile(r'(\[\s*(?:"[^"]*"(?:\s*,\s*"[^"]*")*\s*),?)\s*}')
_RE_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def _escape_control(match: re.Match[str]) -> str:
    code = ord(match.group(0))
    return _CONTROL_ESCAPES.get(code, f"\\u{code:04x}")


def _escape_whitespace_in_span(match: re.Match[str]) -> str:
    content = match.group(1)
    if "\n" not in content and "\r" not in content and "\t" not in content:
        return match.group(0)
    escaped = (
        content.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _escape_embedded_quotes(match: re.Match[str]) -> str:
    head, middle, tail, closer = match.groups()
    return f'"{head}\\"{middle}\\"{tail}"{closer}'


def _balance(text: str, opener: str, closer: str) -> str:
    opened = text.count(opener)
    closed = text.count(closer)
    if opened > closed:
        return text + closer * (opened - closed)
    if closed > opened:
        return opener * (closed - opened) + text
    return text


def repair_json(text: str) -> str:
    """Apply heuristic fixes to ``text`` and return the rewritten string.

    Never raises. Already-valid JSON without the targeted defects (no raw
    control characters, no single quotes, no bare keys) comes back unchanged
    apart from surrounding whitespace.
    """
    repaired = text.strip()

    repaired = _RE_CONTROL.sub(_escape_control, repaired)
    repaired = repaired.replace("'", '"')
    repaired = _RE_BARE_KEY.sub(r'\1"\2":', repaired)
    repaired = _RE_QUOTED_SPAN.sub(_escape_whitespace_in_span, repaired)
    repaired = _RE_EMBEDDED_QUOTES.sub(_escape_embedded_quotes, repaired)
    repaired = _RE_ARRAY_CLOSED_BY_BRACE.sub(r"\1]", repaired)

    repaired = _balance(repaired, "{", "}")
    repaired = _balance(repaired, "[", "]")

    repaired = _RE_TRAILING_COMMA.sub(r"\1", repaired)
    return repaired


__all__ = ["repair_json"]
