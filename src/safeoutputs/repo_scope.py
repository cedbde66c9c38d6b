"""Repository targeting and allow-list checks for cross-repository intents.

Every message runs against the handler's default repository unless it names
another one in ``repo``. A bare name (``"widgets"``) is qualified with the
default repository's owner. The default repository is always allowed; any
other target must appear in the handler's ``allowed_repos``.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

ENV_TARGET_REPO = "SAFEOUTPUTS_TARGET_REPO"
ENV_CONTEXT_REPO = "GITHUB_REPOSITORY"

REASON_NOT_ALLOWED = "not-allowed"
REASON_MALFORMED = "malformed"


@dataclass(frozen=True)
class RepoSlug:
    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class RepoValidation:
    valid: bool
    qualified_repo: str
    error: str | None = None


@dataclass(frozen=True)
class RepoResolution:
    success: bool
    repo: str | None = None
    owner: str | None = None
    name: str | None = None
    error: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class TargetRepoConfig:
    default_repo: str
    allowed_repos: frozenset[str]


def parse_allowed_repos(value: Any) -> set[str]:
    """Accept a list of slugs or a comma-separated string."""
    entries: Iterable[Any]
    if isinstance(value, str):
        entries = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        entries = value
    else:
        return set()
    return {str(entry).strip() for entry in entries if str(entry).strip()}


def parse_repo_slug(slug: str) -> RepoSlug | None:
    parts = slug.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return RepoSlug(owner=parts[0], name=parts[1])


def get_default_target_repo(
    config: Mapping[str, Any] | None = None, fallback: str | None = None
) -> str:
    """Pick the handler's default repository.

    Precedence: handler ``target-repo`` (or ``target_repo``), then
    ``SAFEOUTPUTS_TARGET_REPO``, then ``GITHUB_REPOSITORY``, then ``fallback``.
    Returns an empty string when nothing is configured.
    """
    if config:
        for key in ("target-repo", "target_repo"):
            value = config.get(key)
            if value and str(value).strip():
                return str(value).strip()
    for env_name in (ENV_TARGET_REPO, ENV_CONTEXT_REPO):
        value = os.environ.get(env_name, "").strip()
        if value:
            return value
    return fallback or ""


def resolve_target_repo_config(
    config: Mapping[str, Any] | None, fallback: str | None = None
) -> TargetRepoConfig:
    allowed = parse_allowed_repos((config or {}).get("allowed_repos"))
    return TargetRepoConfig(
        default_repo=get_default_target_repo(config, fallback),
        allowed_repos=frozenset(allowed),
    )


def validate_repo(repo: str, default_repo: str, allowed_repos: Iterable[str]) -> RepoValidation:
    qualified = repo
    if "/" not in repo:
        default_parts = parse_repo_slug(default_repo)
        if default_parts is not None:
            qualified = f"{default_parts.owner}/{repo}"

    allowed = set(allowed_repos)
    if qualified == default_repo or qualified in allowed:
        return RepoValidation(valid=True, qualified_repo=qualified)

    permitted = ", ".join([default_repo, *sorted(allowed)])
    return RepoValidation(
        valid=False,
        qualified_repo=qualified,
        error=f"Repository '{repo}' is not in the allowed-repos list. Allowed: {permitted}",
    )


def resolve_and_validate_repo(
    message: Mapping[str, Any],
    default_repo: str,
    allowed_repos: Iterable[str],
    operation: str = "operation",
) -> RepoResolution:
    """Resolve the repository ``message`` targets and check it is permitted."""
    raw = message.get("repo")
    requested = str(raw).strip() if raw is not None and str(raw).strip() else default_repo

    validation = validate_repo(requested, default_repo, allowed_repos)
    if not validation.valid:
        return RepoResolution(
            success=False, error=validation.error, reason=REASON_NOT_ALLOWED
        )

    slug = parse_repo_slug(validation.qualified_repo)
    if slug is None:
        return RepoResolution(
            success=False,
            error=(
                f"Invalid repository format '{requested}' for {operation}. "
                "Expected 'owner/repo'."
            ),
            reason=REASON_MALFORMED,
        )
    return RepoResolution(
        success=True, repo=str(slug), owner=slug.owner, name=slug.name
    )


__all__ = [
    "ENV_CONTEXT_REPO",
    "ENV_TARGET_REPO",
    "REASON_MALFORMED",
    "REASON_NOT_ALLOWED",
    "RepoResolution",
    "RepoSlug",
    "RepoValidation",
    "TargetRepoConfig",
    "get_default_target_repo",
    "parse_allowed_repos",
    "parse_repo_slug",
    "resolve_and_validate_repo",
    "resolve_target_repo_config",
    "validate_repo",
]
