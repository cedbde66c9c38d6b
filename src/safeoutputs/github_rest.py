from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import requests

from .retry import RetryConfig, is_rate_limited, run_with_retries

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "safeoutputs-rest/0.1.0"
HTTP_ERROR_STATUS = 400
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "PATCH", "DELETE"})


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


@dataclass
class GitHubRestClient:
    """Lightweight REST client for the reference handlers.

    Every operation takes the target ``repo`` (``owner/name``) explicitly since
    one batch may write to several repositories.
    """

    token: str
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    retry: RetryConfig | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )

        def _run() -> requests.Response:
            response = self._session.request(
                method,
                url,
                json=json_body,
                headers=self._session.headers,
                timeout=30,
            )
            if response.status_code >= HTTP_ERROR_STATUS:
                raise GitHubAPIError(
                    f"GitHub API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    response_text=response.text,
                )
            return response

        # A POST may already have created the entity when a gateway error comes back.
        retryable = None if method.upper() in IDEMPOTENT_METHODS else is_rate_limited
        response = run_with_retries(_run, cfg=self.retry, retryable=retryable)
        if response.text:
            try:
                return response.json()
            except ValueError:
                return response.text
        return None

    # ---- Issue operations --------------------------------------------
    def create_issue(
        self,
        repo: str,
        *,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        data = self._request("POST", f"/repos/{repo}/issues", json_body=payload)
        return data if isinstance(data, dict) else {}

    def update_issue(
        self,
        repo: str,
        *,
        number: int,
        title: str | None = None,
        body: str | None = None,
        labels: Iterable[str] | None = None,
        state: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if labels is not None:
            payload["labels"] = list(labels)
        if state is not None:
            payload["state"] = state
        if not payload:
            return {}
        data = self._request("PATCH", f"/repos/{repo}/issues/{number}", json_body=payload)
        return data if isinstance(data, dict) else {}

    def close_issue(self, repo: str, *, number: int) -> dict[str, Any]:
        return self.update_issue(repo, number=number, state="closed")

    def add_comment(self, repo: str, *, number: int, body: str) -> dict[str, Any]:
        data = self._request(
            "POST", f"/repos/{repo}/issues/{number}/comments", json_body={"body": body}
        )
        return data if isinstance(data, dict) else {}


__all__ = ["GitHubAPIError", "GitHubRestClient"]
