import json

import pytest

from safeoutputs.config import (
    DEFAULT_MAX,
    ConfigError,
    HandlerConfig,
    load_config,
    load_custom_job_types,
    load_handler_config_from_env,
)

CONFIG_YAML = """
version: 1
repository:
  default: octo/app
handlers:
  create_issue:
    max: 5
    allowed_repos: [octo/lib]
    labels: [automation]
  add-comment: {}
  update_issue:
    target-repo: octo/other
project_handlers:
  create_project: {max: 1}
output:
  summary_json: out/summary.json
  temporary_id_map: out/ids.json
logging:
  json_enabled: true
  level: DEBUG
behavior:
  mock: true
  dry_run: false
"""

EXPECTED_CREATE_MAX = 5


def _write(tmp_path, text):
    path = tmp_path / "safe_outputs.config.yaml"
    path.write_text(text)
    return path


def test_load_config_from_yaml(tmp_path):
    cfg = load_config(_write(tmp_path, CONFIG_YAML))
    assert cfg.default_repo == "octo/app"
    assert set(cfg.handlers) == {"create_issue", "add_comment", "update_issue"}

    create = cfg.handlers["create_issue"]
    assert create.max == EXPECTED_CREATE_MAX
    assert create.allowed_repos == {"octo/lib"}
    assert create.options == {"labels": ["automation"]}

    assert cfg.handlers["add_comment"].max == DEFAULT_MAX
    assert cfg.handlers["update_issue"].target_repo == "octo/other"
    assert cfg.project_handlers["create_project"].max == 1
    assert cfg.summary_json == "out/summary.json"
    assert cfg.temporary_id_map_file == "out/ids.json"
    assert cfg.logging_json_enabled is True
    assert cfg.logging_level == "DEBUG"
    assert cfg.mock is True
    assert cfg.dry_run is False


def test_handler_for_normalizes_hyphens(tmp_path):
    cfg = load_config(_write(tmp_path, CONFIG_YAML))
    handler = cfg.handler_for("add-comment")
    assert handler is not None and handler.name == "add_comment"
    assert cfg.handler_for("create_project") is cfg.project_handlers["create_project"]
    assert cfg.handler_for("close_issue") is None


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="Configuration file not found"):
        load_config(tmp_path / "missing.yaml")


def test_invalid_yaml(tmp_path):
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(_write(tmp_path, "handlers: [unclosed"))


@pytest.mark.parametrize("value", [-1, "many", True])
def test_invalid_max_rejected(value):
    with pytest.raises(ConfigError, match="Invalid max for create_issue"):
        HandlerConfig.from_mapping("create_issue", {"max": value})


def test_zero_max_is_allowed():
    assert HandlerConfig.from_mapping("create_issue", {"max": 0}).max == 0


def test_as_mapping_feeds_repo_resolution():
    handler = HandlerConfig.from_mapping(
        "create_issue", {"target-repo": "o/r", "allowed-repos": "o/x, o/y"}
    )
    assert handler.as_mapping() == {"allowed_repos": ["o/x", "o/y"], "target-repo": "o/r"}


def test_env_handler_config(monkeypatch):
    monkeypatch.setenv(
        "SAFEOUTPUTS_HANDLER_CONFIG", json.dumps({"create-issue": {"max": 2}, "add_comment": {}})
    )
    monkeypatch.setenv("SAFEOUTPUTS_SAFE_OUTPUT_JOBS", json.dumps({"deploy-app": "deploy"}))
    cfg = load_handler_config_from_env()
    assert cfg.handlers["create_issue"].max == 2
    assert "add_comment" in cfg.handlers
    assert cfg.project_handlers == {}
    assert cfg.custom_job_types == {"deploy_app": "deploy"}


def test_env_project_handler_config_alone(monkeypatch):
    monkeypatch.setenv("SAFEOUTPUTS_PROJECT_HANDLER_CONFIG", json.dumps({"update_project": {}}))
    cfg = load_handler_config_from_env()
    assert cfg.enabled_types == {"update_project"}


def test_env_without_any_handler_config():
    with pytest.raises(ConfigError, match="No handler configuration found"):
        load_handler_config_from_env()


def test_env_handler_config_invalid_json(monkeypatch):
    monkeypatch.setenv("SAFEOUTPUTS_HANDLER_CONFIG", "{oops")
    with pytest.raises(ConfigError, match="Failed to parse SAFEOUTPUTS_HANDLER_CONFIG"):
        load_handler_config_from_env()


def test_custom_job_types_invalid_json_warns(capsys):
    assert load_custom_job_types("{nope") == {}
    assert "Failed to parse SAFEOUTPUTS_SAFE_OUTPUT_JOBS" in capsys.readouterr().out


def test_custom_job_types_empty():
    assert load_custom_job_types() == {}
