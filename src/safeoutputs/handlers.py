"""Reference handlers.

A handler is a callable ``(message, context) -> dict | Awaitable[dict]``.
Returning ``{"success": False, "error": ...}`` or raising marks the message as
failed. A successful create returns ``number`` (and optionally ``repo``) so
the executor can record the entity under the message's temporary ID.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from .executor import HandlerContext, HandlerFn
from .github_rest import GitHubRestClient
from .models import SafeOutputMessage


class HandlerRegistry(Mapping[str, HandlerFn]):
    """Message type -> handler callable."""

    def __init__(self, handlers: Mapping[str, HandlerFn] | None = None) -> None:
        self._handlers: dict[str, HandlerFn] = dict(handlers or {})

    def register(self, type_name: str, handler: HandlerFn) -> None:
        self._handlers[type_name.replace("-", "_")] = handler

    def __getitem__(self, key: str) -> HandlerFn:
        return self._handlers[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


def _failure(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


@dataclass
class MockGitHub:
    """In-memory stand-in for the hosting platform.

    Entity numbers increase across all repositories; ``calls`` records what
    each handler was asked to do (after reference replacement).
    """

    next_number: int = 1
    calls: list[dict[str, Any]] = field(default_factory=list)

    def _allocate(self) -> int:
        number = self.next_number
        self.next_number += 1
        return number

    def _record(self, message: SafeOutputMessage, context: HandlerContext, **data: Any) -> None:
        self.calls.append({"type": message.type, "repo": context.repo, **data})

    def create(self, message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        number = self._allocate()
        body = context.replace_references(message.body)
        self._record(message, context, number=number, title=message.get("title"), body=body)
        kind = "pull" if message.type == "create_pull_request" else "issues"
        if message.type == "create_discussion":
            kind = "discussions"
        return {
            "number": number,
            "repo": context.repo,
            "url": f"https://github.com/{context.repo}/{kind}/{number}",
        }

    def create_project(self, message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        number = self._allocate()
        url = f"https://github.com/orgs/{context.owner}/projects/{number}"
        self._record(message, context, number=number, title=message.get("title"))
        return {"project_url": url}

    def targeted(self, field_name: str) -> HandlerFn:
        def handle(message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
            resolution = context.resolve_issue_number(message.get(field_name))
            if resolution.resolved is None:
                return _failure(str(resolution.error_message))
            target = resolution.resolved
            body = context.replace_references(message.body)
            self._record(message, context, target=target.to_dict(), body=body)
            return {"repo": target.repo, "target": target.number}

        return handle

    def link_sub_issue(self, message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        parent = context.resolve_issue_number(message.get("parent_issue_number"))
        if parent.resolved is None:
            return _failure(f"parent: {parent.error_message}")
        child = context.resolve_issue_number(message.get("sub_issue_number"))
        if child.resolved is None:
            return _failure(f"sub-issue: {child.error_message}")
        self._record(
            message, context, parent=parent.resolved.to_dict(), sub_issue=child.resolved.to_dict()
        )
        return {"parent": parent.resolved.number, "sub_issue": child.resolved.number}

    def update_project(self, message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        project = context.replace_references(str(message.get("project", "")))
        item: dict[str, Any] | None = None
        if message.get("content_number") is not None:
            resolution = context.resolve_issue_number(message.get("content_number"))
            if resolution.resolved is None:
                return _failure(str(resolution.error_message))
            item = resolution.resolved.to_dict()
        self._record(message, context, project=project, item=item)
        return {"project": project}

    def acknowledge(self, message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        self._record(message, context)
        return {}


def build_mock_handlers(backend: MockGitHub | None = None) -> HandlerRegistry:
    mock = backend or MockGitHub()
    registry = HandlerRegistry()
    for type_name in ("create_issue", "create_discussion", "create_pull_request"):
        registry.register(type_name, mock.create)
    registry.register("create_project", mock.create_project)
    for type_name in ("add_comment", "update_issue", "close_issue", "add_labels"):
        registry.register(type_name, mock.targeted("issue_number"))
    registry.register("update_discussion", mock.targeted("discussion_number"))
    registry.register("close_discussion", mock.targeted("discussion_number"))
    registry.register("update_pull_request", mock.targeted("pull_request_number"))
    registry.register("link_sub_issue", mock.link_sub_issue)
    registry.register("update_project", mock.update_project)
    registry.register("noop", mock.acknowledge)
    registry.register("missing_tool", mock.acknowledge)
    return registry


def build_rest_handlers(client: GitHubRestClient) -> HandlerRegistry:
    """Issue handlers backed by the REST API."""

    def create_issue(message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        labels = message.get("labels")
        data = client.create_issue(
            context.repo,
            title=str(message.get("title", "")),
            body=context.replace_references(message.body) or "",
            labels=labels if isinstance(labels, list) else None,
        )
        number = data.get("number")
        if not isinstance(number, int):
            return _failure("GitHub did not return an issue number")
        return {"number": number, "repo": context.repo, "url": data.get("html_url")}

    def add_comment(message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        resolution = context.resolve_issue_number(message.get("issue_number"))
        if resolution.resolved is None:
            return _failure(str(resolution.error_message))
        target = resolution.resolved
        data = client.add_comment(
            target.repo,
            number=target.number,
            body=context.replace_references(message.body) or "",
        )
        return {"repo": target.repo, "target": target.number, "url": data.get("html_url")}

    def update_issue(message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        resolution = context.resolve_issue_number(message.get("issue_number"))
        if resolution.resolved is None:
            return _failure(str(resolution.error_message))
        target = resolution.resolved
        title = message.get("title")
        status = message.get("status")
        client.update_issue(
            target.repo,
            number=target.number,
            title=str(title) if title is not None else None,
            body=context.replace_references(message.body),
            state=str(status) if status in ("open", "closed") else None,
        )
        return {"repo": target.repo, "target": target.number}

    def close_issue(message: SafeOutputMessage, context: HandlerContext) -> dict[str, Any]:
        resolution = context.resolve_issue_number(message.get("issue_number"))
        if resolution.resolved is None:
            return _failure(str(resolution.error_message))
        target = resolution.resolved
        body = context.replace_references(message.body)
        if body:
            client.add_comment(target.repo, number=target.number, body=body)
        client.close_issue(target.repo, number=target.number)
        return {"repo": target.repo, "target": target.number}

    return HandlerRegistry(
        {
            "create_issue": create_issue,
            "add_comment": add_comment,
            "update_issue": update_issue,
            "close_issue": close_issue,
        }
    )


__all__ = ["HandlerRegistry", "MockGitHub", "build_mock_handlers", "build_rest_handlers"]
