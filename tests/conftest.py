"""Pytest configuration for SafeOutputs tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`). Each test gets a
fresh structured logger bound to the current (captured) stdout and a clean
set of pipeline environment variables.
"""

from __future__ import annotations

import json
import os
import sys
import time
from pathlib import Path

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Never talk to the real API from tests
os.environ.setdefault("SAFEOUTPUTS_MOCK", "1")

py_path = os.environ.get("PYTHONPATH", "")
parts = [p for p in py_path.split(os.pathsep) if p]
if str(SRC) not in parts:
    parts.insert(0, str(SRC))
    os.environ["PYTHONPATH"] = os.pathsep.join(parts)

PIPELINE_ENV = (
    "SAFEOUTPUTS_HANDLER_CONFIG",
    "SAFEOUTPUTS_PROJECT_HANDLER_CONFIG",
    "SAFEOUTPUTS_SAFE_OUTPUT_JOBS",
    "SAFEOUTPUTS_TEMPORARY_ID_MAP",
    "SAFEOUTPUTS_TEMPORARY_PROJECT_MAP",
    "SAFEOUTPUTS_TARGET_REPO",
    "SAFEOUTPUTS_QUIET",
    "GITHUB_REPOSITORY",
    "GITHUB_TOKEN",
)


@pytest.fixture(autouse=True)
def _clean_pipeline_env(monkeypatch):
    for name in PIPELINE_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SAFEOUTPUTS_MOCK", "1")


@pytest.fixture(autouse=True)
def _fresh_logger(capsys):
    from safeoutputs.logging import configure_logging  # noqa: PLC0415

    configure_logging(level="DEBUG")
    yield


@pytest.hookimpl(wrapper=True, trylast=True)
def pytest_runtest_call(item):  # type: ignore
    # capsys replaces its stream between setup and call; rebind the fresh
    # logger to the call-phase stdout once capture is active.
    from safeoutputs.logging import configure_logging  # noqa: PLC0415

    configure_logging(level="DEBUG")
    return (yield)


@pytest.fixture
def ndjson():
    def _render(*messages: dict) -> list[str]:
        return [json.dumps(m) for m in messages]

    return _render


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        duration = time.perf_counter() - start
        _TEST_DURATIONS.append((item.nodeid, duration))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
