import pytest

from safeoutputs.repo_scope import (
    REASON_MALFORMED,
    REASON_NOT_ALLOWED,
    get_default_target_repo,
    parse_allowed_repos,
    parse_repo_slug,
    resolve_and_validate_repo,
    resolve_target_repo_config,
    validate_repo,
)


def test_parse_allowed_repos_from_string_and_list():
    assert parse_allowed_repos("a/b, c/d ,") == {"a/b", "c/d"}
    assert parse_allowed_repos(["a/b", " ", "c/d"]) == {"a/b", "c/d"}
    assert parse_allowed_repos(None) == set()


def test_parse_repo_slug():
    slug = parse_repo_slug("octo/app")
    assert slug is not None
    assert (slug.owner, slug.name, str(slug)) == ("octo", "app", "octo/app")
    assert parse_repo_slug("octo") is None
    assert parse_repo_slug("a/b/c") is None
    assert parse_repo_slug("/app") is None


def test_default_repo_is_always_allowed():
    result = validate_repo("octo/app", "octo/app", [])
    assert result.valid
    assert result.qualified_repo == "octo/app"


def test_bare_name_is_qualified_with_default_owner():
    result = validate_repo("widgets", "octo/app", ["octo/widgets"])
    assert result.valid
    assert result.qualified_repo == "octo/widgets"


def test_repo_outside_allow_list_is_rejected():
    result = validate_repo("widgets", "octo/app", [])
    assert not result.valid
    assert result.error == (
        "Repository 'widgets' is not in the allowed-repos list. Allowed: octo/app"
    )


def test_rejection_lists_allowed_repos():
    result = validate_repo("evil/repo", "octo/app", ["octo/b", "octo/a"])
    assert result.error is not None
    assert result.error.endswith("Allowed: octo/app, octo/a, octo/b")


def test_resolve_without_repo_uses_default():
    resolution = resolve_and_validate_repo({"type": "create_issue"}, "octo/app", [])
    assert resolution.success
    assert (resolution.repo, resolution.owner, resolution.name) == ("octo/app", "octo", "app")


def test_resolve_blank_repo_uses_default():
    resolution = resolve_and_validate_repo({"repo": "  "}, "octo/app", [])
    assert resolution.repo == "octo/app"


def test_resolve_cross_repo_allowed():
    resolution = resolve_and_validate_repo({"repo": "lib"}, "octo/app", {"octo/lib"})
    assert resolution.success
    assert resolution.repo == "octo/lib"


def test_resolve_not_allowed():
    resolution = resolve_and_validate_repo({"repo": "evil/repo"}, "octo/app", [])
    assert not resolution.success
    assert resolution.reason == REASON_NOT_ALLOWED
    assert "not in the allowed-repos list" in (resolution.error or "")


def test_resolve_malformed_even_when_listed():
    resolution = resolve_and_validate_repo({"repo": "a/b/c"}, "octo/app", {"a/b/c"}, "create_issue")
    assert not resolution.success
    assert resolution.reason == REASON_MALFORMED
    assert resolution.error == (
        "Invalid repository format 'a/b/c' for create_issue. Expected 'owner/repo'."
    )


def test_no_default_repo_is_malformed():
    resolution = resolve_and_validate_repo({}, "", [])
    assert resolution.reason == REASON_MALFORMED


@pytest.mark.parametrize(
    ("config", "env", "expected"),
    [
        ({"target-repo": "cfg/repo"}, {"SAFEOUTPUTS_TARGET_REPO": "env/repo"}, "cfg/repo"),
        ({"target_repo": "cfg/repo"}, {}, "cfg/repo"),
        ({}, {"SAFEOUTPUTS_TARGET_REPO": "env/repo", "GITHUB_REPOSITORY": "ctx/repo"}, "env/repo"),
        ({}, {"GITHUB_REPOSITORY": "ctx/repo"}, "ctx/repo"),
        ({}, {}, "fallback/repo"),
    ],
)
def test_default_target_repo_precedence(monkeypatch, config, env, expected):
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    assert get_default_target_repo(config, "fallback/repo") == expected


def test_resolve_target_repo_config():
    cfg = resolve_target_repo_config({"target-repo": "o/r", "allowed_repos": "o/x,o/y"})
    assert cfg.default_repo == "o/r"
    assert cfg.allowed_repos == frozenset({"o/x", "o/y"})
