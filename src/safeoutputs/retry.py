"""Centralized retry / backoff helpers.

Provides a single small function ``run_with_retries`` that encapsulates
exponential backoff with jitter and simple classification of transient
GitHub API failure modes (rate limit / abuse / secondary rate limits,
gateway errors and dropped connections).

Environment overrides:
  SAFEOUTPUTS_RETRY_ATTEMPTS (default 3)
  SAFEOUTPUTS_RETRY_BASE (seconds base, default 0.5)
  SAFEOUTPUTS_RETRY_MAX_SLEEP (cap on any single sleep)

The caller supplies a thunk returning the desired result or raising. Only
transient failures trigger a retry; other failures propagate immediately.
Callers sending non-idempotent requests pass ``retryable=is_rate_limited`` so
a gateway error after the server acted is never replayed.
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)
TRANSIENT_STATUS = frozenset({429, 502, 503, 504})
RATE_LIMIT_STATUS = 429

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from error output.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


def _env_int(name: str, default: str) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("SAFEOUTPUTS_RETRY_ATTEMPTS", "3"))
    base_sleep: float = field(default_factory=lambda: _env_float("SAFEOUTPUTS_RETRY_BASE", "0.5"))


def is_transient(output: str, status: int | None = None) -> bool:
    if status is not None and status in TRANSIENT_STATUS:
        return True
    out_lower = (output or "").lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def _error_text(exc: BaseException) -> str:
    body = getattr(exc, "response_text", None) or ""
    return f"{exc} {body}".strip()


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    return is_transient(_error_text(exc), getattr(exc, "status", None))


def is_rate_limited(exc: BaseException) -> bool:
    """True when the server rejected the request without acting on it."""
    if getattr(exc, "status", None) == RATE_LIMIT_STATUS:
        return True
    out_lower = _error_text(exc).lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def _compute_sleep(attempt: int, cfg: RetryConfig, out: str) -> float:
    explicit = _extract_explicit_backoff(out)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("SAFEOUTPUTS_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    retryable: Callable[[BaseException], bool] | None = None,
) -> T:
    cfg = cfg or RetryConfig()
    should_retry = retryable or _is_retryable
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts or not should_retry(exc):
                raise
            sleep_for = _compute_sleep(attempt, cfg, _error_text(exc))
            get_logger().warning(
                f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
                operation="retry",
                error=str(exc),
            )
            time.sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = [
    "RetryConfig",
    "TRANSIENT_STATUS",
    "is_rate_limited",
    "is_transient",
    "run_with_retries",
]
