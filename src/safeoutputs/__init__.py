"""SafeOutputs - repair, order and dispatch an agent's structured intents.

High-level public API (stable):

from safeoutputs import PipelineConfig, HandlerConfig, process_batch_lines, build_mock_handlers

cfg = PipelineConfig(default_repo="octo/app", handlers={"create_issue": HandlerConfig("create_issue")})
summary = asyncio.run(process_batch_lines(lines, build_mock_handlers(), cfg))
print(summary.to_dict()["totals"])

The lower-level pieces (``repair_json``, ``sanitize_structure``,
``plan_execution_order``, ``resolve_and_validate_repo``) are importable on
their own. The CLI delegates to this library.
"""

from __future__ import annotations

from .config import ConfigError, HandlerConfig, PipelineConfig, load_config
from .executor import HandlerContext, process_batch_lines, process_messages
from .graph import plan_execution_order, sort_safe_output_messages
from .handlers import HandlerRegistry, build_mock_handlers, build_rest_handlers
from .json_repair import repair_json
from .models import BatchSummary, IntentType, MessageOutcome, SafeOutputMessage
from .repo_scope import resolve_and_validate_repo
from .sanitizer import sanitize_structure
from .temporary_id import generate_temporary_id, is_temporary_id

# Version constant (sync manually with pyproject)
__version__ = "0.1.0"

__all__ = [
    "BatchSummary",
    "ConfigError",
    "HandlerConfig",
    "HandlerContext",
    "HandlerRegistry",
    "IntentType",
    "MessageOutcome",
    "PipelineConfig",
    "SafeOutputMessage",
    "build_mock_handlers",
    "build_rest_handlers",
    "generate_temporary_id",
    "is_temporary_id",
    "load_config",
    "plan_execution_order",
    "process_batch_lines",
    "process_messages",
    "repair_json",
    "resolve_and_validate_repo",
    "sanitize_structure",
    "sort_safe_output_messages",
    "__version__",
]
