from __future__ import annotations

import nox

nox.options.default_venv_backend = "virtualenv"
nox.options.error_on_missing_interpreters = False


def _install_tools(session: nox.Session) -> None:
    session.install("-e", ".[dev]")


@nox.session
def tests(session: nox.Session) -> None:
    _install_tools(session)
    session.run("pytest", "--cov=safeoutputs", "--cov-report=term", "--cov-report=xml")


@nox.session
def lint(session: nox.Session) -> None:
    _install_tools(session)
    session.run("ruff", "check")


@nox.session
def typecheck(session: nox.Session) -> None:
    _install_tools(session)
    session.run("mypy", "src")


@nox.session
def security(session: nox.Session) -> None:
    _install_tools(session)
    session.run("bandit", "-r", "src")


@nox.session
def build(session: nox.Session) -> None:
    _install_tools(session)
    session.run("python", "-m", "build")
