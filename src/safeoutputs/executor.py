"""Sequential batch executor.

Messages run one at a time in the planned order. Every per-message failure
(unknown type, exhausted ``max``, schema errors, disallowed repository or a
handler exception) becomes a failed ``MessageOutcome`` and the loop moves on.
Entities created by earlier messages are registered in the batch's
temporary-ID map before the next message runs, so later references resolve.
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from .config import HandlerConfig, PipelineConfig
from .errors import (
    MessageValidationError,
    RepositoryNotAllowedError,
    SafeOutputError,
    classify_error,
)
from .graph import plan_execution_order
from .ingest import parse_safe_output_lines
from .limits import MaxCountLimiter
from .logging import get_logger
from .models import BatchSummary, MessageOutcome, SafeOutputMessage
from .references import get_created_temporary_id
from .repo_scope import REASON_NOT_ALLOWED, get_default_target_repo, resolve_and_validate_repo
from .schemas import validate_message
from .temporary_id import (
    IssueResolution,
    ResolvedReference,
    TemporaryIdMap,
    has_unresolved_temporary_ids,
    replace_temporary_id_references,
    replace_temporary_project_references,
    resolve_issue_number,
)


@dataclass
class HandlerContext:
    """What a handler gets besides the message itself."""

    repo: str
    owner: str
    name: str
    config: HandlerConfig
    temporary_ids: TemporaryIdMap
    project_map: dict[str, str]
    dry_run: bool = False

    def resolve_issue_number(self, value: Any) -> IssueResolution:
        return resolve_issue_number(value, self.temporary_ids, self.repo)

    def replace_references(self, text: str | None) -> str | None:
        if text is None:
            return None
        replaced = replace_temporary_id_references(text, self.temporary_ids, self.repo)
        return replace_temporary_project_references(replaced, self.project_map)


HandlerResult = Union[Mapping[str, Any], None]
HandlerFn = Callable[
    [SafeOutputMessage, HandlerContext],
    Union[HandlerResult, Awaitable[HandlerResult]],
]


@dataclass
class BatchState:
    config: PipelineConfig
    temporary_ids: TemporaryIdMap = field(default_factory=dict)
    project_map: dict[str, str] = field(default_factory=dict)
    limiters: dict[str, MaxCountLimiter] = field(default_factory=dict)

    def limiter_for(self, handler_config: HandlerConfig) -> MaxCountLimiter:
        limiter = self.limiters.get(handler_config.name)
        if limiter is None:
            limiter = MaxCountLimiter(handler_config.name, handler_config.max)
            self.limiters[handler_config.name] = limiter
        return limiter

    def register_result(self, temp_id: str, repo: str, result: Mapping[str, Any]) -> None:
        project_url = result.get("project_url")
        if isinstance(project_url, str) and project_url:
            self.project_map[temp_id] = project_url
        number = result.get("number")
        if isinstance(number, bool) or not isinstance(number, int):
            return
        target = result.get("repo")
        self.temporary_ids[temp_id] = ResolvedReference(
            repo=str(target) if target else repo, number=number
        )
        get_logger().debug(
            f"Registered temporary ID {temp_id} -> {self.temporary_ids[temp_id]}",
            temporary_id=temp_id,
        )


def _coerce_messages(messages: Sequence[Any]) -> list[SafeOutputMessage]:
    out: list[SafeOutputMessage] = []
    for index, message in enumerate(messages):
        if isinstance(message, SafeOutputMessage):
            out.append(message)
        else:
            out.append(SafeOutputMessage.from_mapping(index, message))
    return out


def _prepare_context(
    message: SafeOutputMessage,
    handler_config: HandlerConfig,
    state: BatchState,
    default_repo: str | None,
) -> HandlerContext:
    errors = validate_message(message)
    if errors:
        raise MessageValidationError("; ".join(errors))

    target = get_default_target_repo(handler_config.as_mapping(), default_repo)
    resolution = resolve_and_validate_repo(
        message, target, handler_config.allowed_repos, message.type
    )
    if not resolution.success:
        get_logger().error(
            str(resolution.error),
            operation="repo_validation",
            message_index=message.index,
            message_type=message.type,
        )
        if resolution.reason == REASON_NOT_ALLOWED:
            raise RepositoryNotAllowedError(str(resolution.error))
        raise MessageValidationError(str(resolution.error))

    return HandlerContext(
        repo=str(resolution.repo),
        owner=str(resolution.owner),
        name=str(resolution.name),
        config=handler_config,
        temporary_ids=state.temporary_ids,
        project_map=state.project_map,
        dry_run=state.config.dry_run,
    )


async def _run_one(
    message: SafeOutputMessage,
    handlers: Mapping[str, HandlerFn],
    state: BatchState,
    default_repo: str | None,
    *,
    provides: bool = True,
) -> MessageOutcome:
    config = state.config
    handler_config = config.handler_for(message.type)
    if handler_config is None:
        job = config.custom_job_types.get(message.type)
        if job is not None:
            return MessageOutcome(
                message.index,
                message.type,
                True,
                payload={"skipped": True, "reason": f"handled by custom job '{job}'"},
            )
        raise SafeOutputError(f"No handler configured for message type '{message.type}'")
    handler = handlers.get(message.type)
    if handler is None:
        raise SafeOutputError(f"No handler registered for message type '{message.type}'")

    limiter = state.limiter_for(handler_config)
    limiter.check()
    context = _prepare_context(message, handler_config, state, default_repo)
    limiter.consume()

    if has_unresolved_temporary_ids(message.body, state.temporary_ids):
        get_logger().warning(
            f"Message {message.index} ({message.type}) references temporary IDs "
            "that are not resolved yet; they are left as-is",
            message_index=message.index,
        )

    outcome_id = get_created_temporary_id(message)
    if context.dry_run:
        return MessageOutcome(
            message.index, message.type, True, repo=context.repo,
            temporary_id=outcome_id, payload={"dry_run": True},
        )

    result: Any = handler(message, context)
    if inspect.isawaitable(result):
        result = await result
    payload = dict(result) if isinstance(result, Mapping) else {}
    if payload.get("success") is False:
        error = str(payload.get("error") or "handler reported failure")
        return MessageOutcome(
            message.index, message.type, False, error=error, category="handler",
            repo=context.repo, temporary_id=outcome_id, payload=payload,
        )
    payload.pop("success", None)
    if outcome_id is not None and provides:
        state.register_result(outcome_id, context.repo, payload)
    return MessageOutcome(
        message.index, message.type, True, repo=context.repo,
        temporary_id=outcome_id, payload=payload,
    )


async def process_messages(
    messages: Sequence[Any],
    handlers: Mapping[str, HandlerFn],
    config: PipelineConfig,
    *,
    temporary_ids: TemporaryIdMap | None = None,
    project_map: Mapping[str, str] | None = None,
    default_repo: str | None = None,
) -> BatchSummary:
    """Plan the batch, then await each handler in order."""
    logger = get_logger()
    batch = _coerce_messages(messages)
    state = BatchState(
        config=config,
        temporary_ids=dict(temporary_ids or {}),
        project_map=dict(project_map or {}),
    )
    repo = default_repo or config.default_repo
    plan = plan_execution_order(batch)

    outcomes: list[MessageOutcome] = []
    for position in plan.order:
        message = batch[position]
        start = time.perf_counter()
        created = get_created_temporary_id(message)
        # Later duplicates of a temporary ID never overwrite the first creator.
        provides = created is not None and plan.graph.providers.get(created) == position
        try:
            outcome = await _run_one(message, handlers, state, repo, provides=provides)
        except Exception as exc:
            info = classify_error(exc)
            outcome = MessageOutcome(
                message.index,
                message.type,
                False,
                error=info.message,
                category=info.category,
                temporary_id=created,
            )
        outcomes.append(outcome)
        logger.log_message_outcome(
            outcome.index,
            outcome.type,
            outcome.success,
            outcome.error,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )

    summary = BatchSummary(
        order=[batch[i].index for i in plan.order],
        outcomes=outcomes,
        cycle=[batch[i].index for i in plan.cycle],
        temporary_ids={key: ref.to_dict() for key, ref in state.temporary_ids.items()},
    )
    logger.info(
        f"Processed {len(outcomes)} message(s): {summary.succeeded} succeeded, "
        f"{summary.failed} failed",
        operation="batch_complete",
    )
    return summary


async def process_batch_lines(
    lines: Iterable[str],
    handlers: Mapping[str, HandlerFn],
    config: PipelineConfig,
    **kwargs: Any,
) -> BatchSummary:
    """Ingest NDJSON lines, then run :func:`process_messages`."""
    ingested = parse_safe_output_lines(lines)
    summary = await process_messages(ingested.messages, handlers, config, **kwargs)
    summary.parse_errors = [failure.to_dict() for failure in ingested.failures]
    return summary


__all__ = [
    "BatchState",
    "HandlerContext",
    "HandlerFn",
    "process_batch_lines",
    "process_messages",
]
