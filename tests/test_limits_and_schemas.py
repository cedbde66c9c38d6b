import pytest

from safeoutputs.errors import MaxCountExceededError
from safeoutputs.limits import MaxCountLimiter
from safeoutputs.schemas import get_schemas, validate_message


def test_limiter_allows_up_to_max():
    limiter = MaxCountLimiter("create_issue", 2)
    limiter.consume()
    limiter.consume()
    assert limiter.remaining == 0
    with pytest.raises(MaxCountExceededError, match="Max count of 2 reached for create_issue"):
        limiter.consume()
    assert limiter.count == 2


def test_zero_max_rejects_first_message():
    with pytest.raises(MaxCountExceededError):
        MaxCountLimiter("noop", 0).check()


def test_every_schema_requires_type():
    for name, schema in get_schemas().items():
        assert "type" in schema["required"], name


def test_valid_messages_have_no_errors():
    assert validate_message({"type": "create_issue", "title": "Hello"}) == []
    assert validate_message({"type": "add_comment", "body": "hi", "issue_number": "aw_abc1"}) == []
    assert validate_message({"type": "not_a_known_type"}) == []


@pytest.mark.parametrize(
    ("message", "fragment"),
    [
        ({"type": "create_issue"}, "'title' is a required property"),
        ({"type": "create_issue", "title": ""}, "title"),
        ({"type": "add_comment"}, "'body' is a required property"),
        ({"type": "link_sub_issue", "parent_issue_number": 1}, "'sub_issue_number' is a required property"),
        ({"type": "create_discussion", "title": "t"}, "'body' is a required property"),
        ({"type": "update_project"}, "'project' is a required property"),
        ({"type": "update_issue", "status": "archived"}, "status"),
        ({"type": "add_comment", "body": "x", "issue_number": [1]}, "issue_number"),
    ],
)
def test_invalid_messages_report_errors(message, fragment):
    errors = validate_message(message)
    assert errors
    assert any(fragment in error for error in errors)
    assert all(error.startswith(f"{message['type']}: ") for error in errors)
