"""SafeOutputs CLI.

Subcommands:
  plan          -> ingest a batch and print the planned execution order
  process       -> run the full pipeline against the reference handlers
  repair        -> repair + sanitize each stdin line and print the JSON
  validate-repo -> show how a target repository resolves against an allow-list
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any, TextIO

from .config import ConfigError, PipelineConfig
from .errors import redact
from .executor import process_batch_lines
from .github_rest import GitHubRestClient
from .graph import plan_execution_order
from .handlers import HandlerRegistry, build_mock_handlers, build_rest_handlers
from .id_store import (
    TemporaryIdDocument,
    load_temporary_id_document,
    persist_temporary_id_document,
)
from .ingest import parse_safe_output_line, parse_safe_output_lines
from .logging import configure_logging
from .repo_scope import get_default_target_repo, parse_allowed_repos, resolve_and_validate_repo
from .runtime import execute_command, prepare_config
from .sanitizer import sanitize_structure
from .temporary_id import load_temporary_id_map

CONFIG_DEFAULT = "safe_outputs.config.yaml"
REPO_HELP = "Default target repository (owner/repo)"
INPUT_HELP = "NDJSON file with one intent per line (default: stdin)"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="safeoutputs", description="Repair, order and dispatch agent safe outputs"
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational logging (env: SAFEOUTPUTS_QUIET=1)",
    )
    p.add_argument("--log-json", action="store_true", help="Emit structured JSON log lines")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pp = sub.add_parser("plan", help="Print the dependency-ordered execution plan")
    pp.add_argument("--input", help=INPUT_HELP)

    pr = sub.add_parser("process", help="Process a batch with the reference handlers")
    pr.add_argument("--input", help=INPUT_HELP)
    pr.add_argument("--config", default=CONFIG_DEFAULT)
    pr.add_argument("--repo", help=REPO_HELP)
    pr.add_argument("--summary-json", help="Write the batch summary to this path")
    pr.add_argument("--temporary-id-map", help="Persisted temporary ID map to load and update")
    pr.add_argument("--mock", action="store_true", help="Use in-memory handlers (env: SAFEOUTPUTS_MOCK=1)")
    pr.add_argument("--dry-run", action="store_true", help="Validate and plan without calling handlers")

    sub.add_parser("repair", help="Repair and sanitize JSON lines read from stdin")

    pv = sub.add_parser("validate-repo", help="Resolve a target repository against an allow-list")
    pv.add_argument("target")
    pv.add_argument("--default", required=True, dest="default_repo", help=REPO_HELP)
    pv.add_argument("--allowed", default="", help="Comma-separated allowed repositories")
    return p


def _read_lines(path: str | None, stdin: TextIO | None = None) -> list[str]:
    if path:
        return Path(path).read_text(encoding="utf-8").splitlines()
    return (stdin or sys.stdin).read().splitlines()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _cmd_plan(args: argparse.Namespace) -> int:
    ingested = parse_safe_output_lines(_read_lines(args.input))
    plan = plan_execution_order(ingested.messages)
    _print_json(
        {
            "order": plan.order,
            "cycle": plan.cycle,
            "reordered": plan.reordered,
            "providers": dict(plan.graph.providers),
            "dependencies": {
                str(k): sorted(v) for k, v in sorted(plan.graph.dependencies.items())
            },
            "duplicates": [
                {"temporary_id": d.temporary_id, "first": d.first_index, "duplicate": d.duplicate_index}
                for d in plan.graph.duplicates
            ],
            "parse_errors": [f.to_dict() for f in ingested.failures],
        }
    )
    return 0


def _cmd_repair(args: argparse.Namespace) -> int:
    exit_code = 0
    for line_number, raw in enumerate(_read_lines(None), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            value, _ = parse_safe_output_line(line)
        except ValueError as exc:
            print(f"[repair] line {line_number}: {exc}", file=sys.stderr)
            exit_code = 1
            continue
        print(json.dumps(sanitize_structure(value)))
    return exit_code


def _cmd_validate_repo(args: argparse.Namespace) -> int:
    resolution = resolve_and_validate_repo(
        {"repo": args.target},
        args.default_repo,
        parse_allowed_repos(args.allowed),
        "validate-repo",
    )
    _print_json({k: v for k, v in vars(resolution).items() if v is not None})
    return 0 if resolution.success else 1


def _select_handlers(cfg: PipelineConfig) -> HandlerRegistry:
    if cfg.mock or os.environ.get("SAFEOUTPUTS_MOCK") == "1":
        return build_mock_handlers()
    token = os.environ.get("GITHUB_TOKEN")
    if not token:
        raise ConfigError("GITHUB_TOKEN is required unless running with --mock")
    return build_rest_handlers(GitHubRestClient(token=token))


def _write_json(path: str, payload: Any) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _cmd_process(cfg: PipelineConfig, args: argparse.Namespace) -> int:
    handlers = _select_handlers(cfg)
    default_repo = get_default_target_repo(None, cfg.default_repo)
    map_path = Path(args.temporary_id_map or cfg.temporary_id_map_file)
    id_map = load_temporary_id_document(map_path).to_map(default_repo)
    id_map.update(load_temporary_id_map(default_repo=default_repo))

    summary = asyncio.run(
        process_batch_lines(
            _read_lines(args.input),
            handlers,
            cfg,
            temporary_ids=id_map,
            default_repo=default_repo or None,
        )
    )
    if not cfg.dry_run:
        document = TemporaryIdDocument(entries=dict(summary.temporary_ids))
        persist_temporary_id_document(map_path, document)
    payload = summary.to_dict()
    if args.summary_json:
        _write_json(args.summary_json, payload)
    print("[process] totals", json.dumps(payload["totals"]))
    for outcome in summary.outcomes:
        if not outcome.success:
            print(f"[process] message {outcome.index} ({outcome.type}) failed: {redact(outcome.error or '')}")
    return 0 if summary.ok else 1


def _require_cfg(cfg: PipelineConfig | None) -> PipelineConfig:
    if cfg is None:  # pragma: no cover - defensive guard
        raise RuntimeError("Configuration not loaded")
    return cfg


def _build_handlers(args: argparse.Namespace, cfg: PipelineConfig | None) -> dict[str, Any]:
    return {
        "plan": lambda: _cmd_plan(args),
        "process": lambda: _cmd_process(_require_cfg(cfg), args),
        "repair": lambda: _cmd_repair(args),
        "validate-repo": lambda: _cmd_validate_repo(args),
    }


def _configure_logging(args: argparse.Namespace, cfg: PipelineConfig | None) -> None:
    level = cfg.logging_level if cfg else "INFO"
    json_logging = bool(args.log_json or (cfg and cfg.logging_json_enabled))
    if args.quiet:
        level = "ERROR"
    configure_logging(json_logging=json_logging, level=level)


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if not getattr(args, "quiet", False) and os.environ.get("SAFEOUTPUTS_QUIET") == "1":
        args.quiet = True
    try:
        cfg = prepare_config(args)
    except ConfigError as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 2
    _configure_logging(args, cfg)
    handlers = _build_handlers(args, cfg)
    handler = handlers.get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    try:
        return execute_command(handler, args, cfg, args.cmd)
    except ConfigError as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
