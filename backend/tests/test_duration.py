from __future__ import annotations

import pytest

from tasktrack.duration import (
    INVALID_FORMAT_MESSAGE,
    check_minutes,
    format_duration,
    is_valid_duration,
    parse_duration,
)
from tasktrack.errors import InvalidDurationFormat


@pytest.mark.parametrize(
    "text,minutes",
    [
        ("15 minutes", 15),
        ("45 minutes", 45),
        ("1 hour", 60),
        ("2 hours", 120),
        ("1 hour 30 minutes", 90),
        ("3 hours 45 minutes", 225),
        ("  2 HOURS   15 Minutes ", 135),
    ],
)
def test_parse_accepts_quarter_hour_text(text: str, minutes: int):
    assert parse_duration(text) == minutes
    assert is_valid_duration(text)


@pytest.mark.parametrize("text", [None, "", "   ", "0 hours"])
def test_blank_and_zero_are_unspecified(text):
    assert parse_duration(text) is None


@pytest.mark.parametrize(
    "text",
    [
        "10 minutes",
        "1 hour 5 minutes",
        "1.5 hours",
        "90 minutes",
        "0 minutes",
        "1 hour 60 minutes",
        "-1 hours",
        "1h",
        "an hour",
        "１５ minutes",
        "١ hour",
        "1\u00a0hour",
    ],
)
def test_parse_rejects_other_text(text: str):
    with pytest.raises(InvalidDurationFormat) as excinfo:
        parse_duration(text)
    assert excinfo.value.message == INVALID_FORMAT_MESSAGE
    assert excinfo.value.status_code == 400
    assert not is_valid_duration(text)


def test_parse_rejects_overlong_text():
    with pytest.raises(InvalidDurationFormat, match="100 characters"):
        parse_duration("1 hour " + " " * 95 + "15 minutes")


@pytest.mark.parametrize(
    "minutes,text",
    [
        (None, "Not specified"),
        (0, "Not specified"),
        (15, "15 minutes"),
        (60, "1 hour"),
        (90, "1 hour 30 minutes"),
        (120, "2 hours"),
        (135, "2 hours 15 minutes"),
    ],
)
def test_format_duration(minutes, text: str):
    assert format_duration(minutes) == text


def test_formatted_text_parses_back_to_same_minutes():
    for minutes in range(15, 24 * 60 + 1, 15):
        assert parse_duration(format_duration(minutes)) == minutes


def test_check_minutes_accepts_quarter_hours():
    assert check_minutes(None) is None
    assert check_minutes(0) == 0
    assert check_minutes(45) == 45


@pytest.mark.parametrize("value", [10, -15, 1.5, True, "60"])
def test_check_minutes_rejects_other_values(value):
    with pytest.raises(InvalidDurationFormat):
        check_minutes(value)
