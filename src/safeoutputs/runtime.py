"""Runtime helpers for SafeOutputs CLI orchestration."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .config import (
    ENV_HANDLER_CONFIG,
    ENV_PROJECT_HANDLER_CONFIG,
    PipelineConfig,
    load_config,
    load_handler_config_from_env,
)
from .logging import get_logger

CONFIG_COMMANDS = {"process"}


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str], PipelineConfig] = load_config
) -> PipelineConfig | None:
    """Load and post-process PipelineConfig for the given argparse namespace.

    A config file wins when it exists; otherwise the handler JSON environment
    variables are used.
    """
    if getattr(args, "cmd", None) not in CONFIG_COMMANDS:
        return None
    if not hasattr(args, "config"):
        raise AttributeError("Command namespace is missing 'config' attribute")
    path = Path(args.config)
    env_configured = bool(
        os.environ.get(ENV_HANDLER_CONFIG) or os.environ.get(ENV_PROJECT_HANDLER_CONFIG)
    )
    if path.exists() or not env_configured:
        cfg = loader(args.config)
    else:
        cfg = load_handler_config_from_env()
    repo_override = getattr(args, "repo", None)
    if repo_override:
        cfg.default_repo = repo_override
    if getattr(args, "mock", False):
        cfg.mock = True
    if getattr(args, "dry_run", False):
        cfg.dry_run = True
    return cfg


def execute_command(
    handler: _HandlerCallable, args: Any, cfg: PipelineConfig | None, command: str
) -> int:
    """Execute a command handler and log its exit code and duration."""
    logger = get_logger()
    start = time.monotonic()
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except Exception as exc:
        logger.log_error(f"command {command} failed", error=str(exc), operation=command)
        raise
    logger.log_performance(
        f"command_{command}", (time.monotonic() - start) * 1000, exit_code=exit_code
    )
    return exit_code


__all__ = ["prepare_config", "execute_command"]
