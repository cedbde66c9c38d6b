from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .logging import get_logger
from .models import normalize_type_name
from .repo_scope import parse_allowed_repos

ENV_HANDLER_CONFIG = "SAFEOUTPUTS_HANDLER_CONFIG"
ENV_PROJECT_HANDLER_CONFIG = "SAFEOUTPUTS_PROJECT_HANDLER_CONFIG"
ENV_SAFE_OUTPUT_JOBS = "SAFEOUTPUTS_SAFE_OUTPUT_JOBS"

DEFAULT_MAX = 10


class ConfigError(RuntimeError):
    pass


@dataclass
class HandlerConfig:
    name: str
    max: int = DEFAULT_MAX
    allowed_repos: set[str] = field(default_factory=set)
    target_repo: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, name: str, raw: Any) -> HandlerConfig:
        data = dict(raw) if isinstance(raw, dict) else {}
        max_count = _coerce_max(name, data.pop("max", DEFAULT_MAX))
        hyphen_allowed = data.pop("allowed-repos", None)
        allowed = parse_allowed_repos(data.pop("allowed_repos", hyphen_allowed))
        hyphen_target = data.pop("target-repo", None)
        target = hyphen_target or data.pop("target_repo", None)
        data.pop("target_repo", None)
        return cls(
            name=name,
            max=max_count,
            allowed_repos=allowed,
            target_repo=str(target).strip() if target else None,
            options=data,
        )

    def as_mapping(self) -> dict[str, Any]:
        """Shape expected by ``repo_scope.resolve_target_repo_config``."""
        out: dict[str, Any] = {"allowed_repos": sorted(self.allowed_repos), **self.options}
        if self.target_repo:
            out["target-repo"] = self.target_repo
        return out


@dataclass
class PipelineConfig:
    default_repo: str | None = None
    handlers: dict[str, HandlerConfig] = field(default_factory=dict)
    project_handlers: dict[str, HandlerConfig] = field(default_factory=dict)
    custom_job_types: dict[str, str] = field(default_factory=dict)
    summary_json: str = "safe_outputs_summary.json"
    temporary_id_map_file: str = ".safeoutputs/temporary_ids.json"
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    mock: bool = False
    dry_run: bool = False
    source_file: Path | None = None

    def handler_for(self, type_name: str) -> HandlerConfig | None:
        key = normalize_type_name(type_name)
        return self.handlers.get(key) or self.project_handlers.get(key)

    @property
    def enabled_types(self) -> set[str]:
        return set(self.handlers) | set(self.project_handlers)


def _coerce_max(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid max for {name}: {value!r}")
    try:
        max_count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid max for {name}: {value!r}") from exc
    if max_count < 0:
        raise ConfigError(f"Invalid max for {name}: must be >= 0, got {max_count}")
    return max_count


def _normalize_handlers(raw: Any) -> dict[str, HandlerConfig]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("Handler configuration must be a mapping of type -> settings")
    handlers: dict[str, HandlerConfig] = {}
    for key, value in raw.items():
        name = normalize_type_name(key)
        handlers[name] = HandlerConfig.from_mapping(name, value)
    return handlers


def _parse_env_json(name: str) -> Any:
    text = os.environ.get(name)
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse {name}: {exc.msg}") from exc


def load_handler_config_from_env() -> PipelineConfig:
    """Build a config from the handler JSON environment variables.

    At least one of ``SAFEOUTPUTS_HANDLER_CONFIG`` and
    ``SAFEOUTPUTS_PROJECT_HANDLER_CONFIG`` must be set.
    """
    handlers_raw = _parse_env_json(ENV_HANDLER_CONFIG)
    project_raw = _parse_env_json(ENV_PROJECT_HANDLER_CONFIG)
    if handlers_raw is None and project_raw is None:
        raise ConfigError(
            f"No handler configuration found: set {ENV_HANDLER_CONFIG} "
            f"or {ENV_PROJECT_HANDLER_CONFIG}"
        )
    return PipelineConfig(
        handlers=_normalize_handlers(handlers_raw),
        project_handlers=_normalize_handlers(project_raw),
        custom_job_types=load_custom_job_types(),
    )


def load_custom_job_types(raw: str | None = None) -> dict[str, str]:
    """Custom job type -> output name; invalid JSON yields an empty mapping."""
    text = raw if raw is not None else os.environ.get(ENV_SAFE_OUTPUT_JOBS, "")
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        get_logger().warning(f"Failed to parse {ENV_SAFE_OUTPUT_JOBS}: {exc.msg}")
        return {}
    if not isinstance(parsed, dict):
        get_logger().warning(f"{ENV_SAFE_OUTPUT_JOBS} must be a JSON object")
        return {}
    return {normalize_type_name(k): str(v) for k, v in parsed.items()}


def load_config(path: str | Path) -> PipelineConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        raw = cast(dict[str, Any], yaml.safe_load(p.read_text()) or {})
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration root must be a mapping: {p}")
    repository = cast(dict[str, Any], raw.get("repository", {}) or {})
    out = cast(dict[str, Any], raw.get("output", {}) or {})
    logging_config = cast(dict[str, Any], raw.get("logging", {}) or {})
    behavior = cast(dict[str, Any], raw.get("behavior", {}) or {})

    return PipelineConfig(
        default_repo=repository.get("default"),
        handlers=_normalize_handlers(raw.get("handlers")),
        project_handlers=_normalize_handlers(raw.get("project_handlers")),
        custom_job_types=load_custom_job_types(),
        summary_json=out.get("summary_json", "safe_outputs_summary.json"),
        temporary_id_map_file=out.get("temporary_id_map", ".safeoutputs/temporary_ids.json"),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=logging_config.get("level", "INFO"),
        mock=bool(behavior.get("mock", False)),
        dry_run=bool(behavior.get("dry_run", False)),
        source_file=p,
    )


__all__ = [
    "ConfigError",
    "DEFAULT_MAX",
    "HandlerConfig",
    "PipelineConfig",
    "load_config",
    "load_custom_job_types",
    "load_handler_config_from_env",
]
