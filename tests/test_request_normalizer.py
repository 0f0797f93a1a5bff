import pytest

from campusdesk.request_normalizer import normalize_payload, parse_campus_flag


@pytest.mark.parametrize(
    "value, expected",
    [
        (False, False),
        ("false", False),
        (" FALSE ", False),
        (True, True),
        ("true", True),
        ("no", True),
        (0, True),
        (None, True),
    ],
)
def test_campus_flag_only_false_disables(value, expected):
    assert parse_campus_flag(value) is expected


def test_question_aliases_and_session_keys():
    request = normalize_payload({"email": " s@campus.edu ", "q": " Hours? ", "session_id": "session_1"})

    assert request.email == "s@campus.edu"
    assert request.question == "Hours?"
    assert request.session_id == "session_1"
    assert request.campus_search is True


def test_blank_values_become_none():
    request = normalize_payload({"email": "", "question": "   ", "sessionId": "", "isCampusSearch": "false"})

    assert request.email is None
    assert request.question is None
    assert request.session_id is None
    assert request.campus_search is False


def test_question_key_precedence():
    request = normalize_payload({"question": "primary", "query": "secondary", "text": "third"})

    assert request.question == "primary"
