import json

from safeoutputs.logging import StructuredLogger, configure_logging, get_logger, neutralize_workflow_commands


def test_neutralize_workflow_commands():
    assert neutralize_workflow_commands("::set-output name=x::y") == ": :set-output name=x::y"
    assert neutralize_workflow_commands("ok\n::error::bad") == "ok\n: :error::bad"
    assert neutralize_workflow_commands("inline :: stays") == "inline :: stays"
    assert neutralize_workflow_commands(5) == 5
    assert neutralize_workflow_commands(None) is None


def test_plain_logger_neutralizes_messages(capsys):
    logger = StructuredLogger(name="test-plain", level="INFO")
    logger.info("title\n::warning::injected")
    out = capsys.readouterr().out
    assert ": :warning::injected" in out
    assert "\n::warning" not in out


def test_json_logger_emits_structured_fields(capsys):
    logger = StructuredLogger(name="test-json", json_logging=True, level="INFO")
    logger.log_message_outcome(3, "create_issue", False, "Max count of 2 reached", duration_ms=1.5)
    lines = [line for line in capsys.readouterr().out.splitlines() if line]
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["level"] == "WARNING"
    assert entry["operation"] == "message_processed"
    assert entry["message_index"] == 3
    assert entry["message_type"] == "create_issue"
    assert entry["error"] == "Max count of 2 reached"
    assert "failed" in entry["message"]


def test_json_logger_dedupes_repeated_lines(capsys):
    logger = StructuredLogger(name="test-dedupe", json_logging=True, level="INFO")
    logger.info("same")
    logger.info("same")
    logger.info("different")
    lines = [line for line in capsys.readouterr().out.splitlines() if line]
    assert len(lines) == 2


def test_level_filtering(capsys):
    logger = StructuredLogger(name="test-level", level="WARNING")
    logger.info("hidden")
    logger.warning("shown")
    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out


def test_configure_logging_replaces_global():
    configured = configure_logging(json_logging=True, level="ERROR")
    assert get_logger() is configured
    assert configured.name == "safeoutputs"
