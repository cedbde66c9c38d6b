"""Strip prototype-pollution keys from parsed agent output.

Agent output is forwarded to JavaScript tooling and templating layers that
treat ``__proto__``, ``constructor`` and ``prototype`` specially, so those
keys are removed at every depth before a message is used.

The walk uses an explicit stack rather than recursion, and an identity map
from source container to output container, so deeply nested input cannot
exhaust the interpreter stack and self-referencing structures terminate.
"""

from __future__ import annotations

from typing import Any

DANGEROUS_KEYS: frozenset[str] = frozenset({"__proto__", "constructor", "prototype"})


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list, tuple))


def _empty_like(value: Any) -> dict[Any, Any] | list[Any]:
    return {} if isinstance(value, dict) else []


def sanitize_structure(value: Any) -> Any:
    """Return a copy of ``value`` without dangerous keys.

    Scalars are returned as-is. Dicts and lists (tuples become lists) are
    copied; each source container maps to exactly one output container, so
    shared and circular references survive as shared and circular references
    in the output. The input is never mutated.
    """
    if not _is_container(value):
        return value

    root = _empty_like(value)
    seen: dict[int, dict[Any, Any] | list[Any]] = {id(value): root}
    # Keep sources alive so id() values cannot be recycled mid-walk.
    sources: list[Any] = [value]
    stack: list[tuple[Any, dict[Any, Any] | list[Any]]] = [(value, root)]

    def _target_for(child: Any) -> Any:
        if not _is_container(child):
            return child
        existing = seen.get(id(child))
        if existing is not None:
            return existing
        fresh = _empty_like(child)
        seen[id(child)] = fresh
        sources.append(child)
        stack.append((child, fresh))
        return fresh

    while stack:
        source, target = stack.pop()
        if isinstance(source, dict):
            assert isinstance(target, dict)  # nosec B101 - mirrors source kind
            for key, child in source.items():
                if key in DANGEROUS_KEYS:
                    continue
                target[key] = _target_for(child)
        else:
            assert isinstance(target, list)  # nosec B101 - mirrors source kind
            for child in source:
                target.append(_target_for(child))
    return root


__all__ = ["DANGEROUS_KEYS", "sanitize_structure"]
