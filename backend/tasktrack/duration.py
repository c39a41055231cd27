"""Quantized work durations.

A duration is stored as a whole number of minutes that is a multiple of 15, or
``None`` when no time was logged. The textual form accepted from users is one of::

    "<N> minutes"                  N in 15, 30, 45
    "<N> hour" / "<N> hours"       any non-negative N
    "<N> hour(s) <M> minutes"      M in 15, 30, 45

Anything else is rejected with :class:`InvalidDurationFormat`. ``"0 hours"`` is
accepted and treated as unspecified.
"""

from __future__ import annotations

import re
from typing import Optional

from .errors import InvalidDurationFormat

QUANTUM_MINUTES = 15
ALLOWED_MINUTE_PARTS = (15, 30, 45)
MAX_TEXT_LENGTH = 100
NOT_SPECIFIED = "Not specified"

_MINUTES_PATTERN = re.compile(r"^([0-9]+)\s+minutes$", re.IGNORECASE | re.ASCII)
_HOURS_PATTERN = re.compile(r"^([0-9]+)\s+hours?$", re.IGNORECASE | re.ASCII)
_HOURS_MINUTES_PATTERN = re.compile(r"^([0-9]+)\s+hours?\s+([0-9]+)\s+minutes$", re.IGNORECASE | re.ASCII)

INVALID_FORMAT_MESSAGE = (
    'Time must be in 15-minute increments (e.g., "15 minutes", "1 hour", "1 hour 15 minutes")'
)


def parse_duration(text: Optional[str]) -> Optional[int]:
    """Return the minute count for ``text`` or ``None`` when it is empty."""
    if text is None:
        return None
    if not isinstance(text, str):
        raise InvalidDurationFormat(INVALID_FORMAT_MESSAGE)
    trimmed = text.strip()
    if not trimmed:
        return None
    if len(trimmed) > MAX_TEXT_LENGTH:
        raise InvalidDurationFormat("Time taken cannot exceed 100 characters")

    match = _MINUTES_PATTERN.match(trimmed)
    if match:
        minutes = int(match.group(1))
        if minutes in ALLOWED_MINUTE_PARTS:
            return minutes
        raise InvalidDurationFormat(INVALID_FORMAT_MESSAGE)

    match = _HOURS_PATTERN.match(trimmed)
    if match:
        hours = int(match.group(1))
        # "0 hours" carries no logged time
        return hours * 60 or None

    match = _HOURS_MINUTES_PATTERN.match(trimmed)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if minutes in ALLOWED_MINUTE_PARTS:
            return hours * 60 + minutes
        raise InvalidDurationFormat(INVALID_FORMAT_MESSAGE)

    raise InvalidDurationFormat(INVALID_FORMAT_MESSAGE)


def is_valid_duration(text: Optional[str]) -> bool:
    try:
        parse_duration(text)
    except InvalidDurationFormat:
        return False
    return True


def check_minutes(minutes: Optional[int]) -> Optional[int]:
    """Validate an already-numeric duration before it is stored."""
    if minutes is None:
        return None
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidDurationFormat("Time taken must be a whole number of minutes")
    if minutes < 0 or minutes % QUANTUM_MINUTES:
        raise InvalidDurationFormat(INVALID_FORMAT_MESSAGE)
    return minutes


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def format_duration(minutes: Optional[int]) -> str:
    if not minutes:
        return NOT_SPECIFIED
    hours, remainder = divmod(minutes, 60)
    if hours == 0:
        return f"{remainder} minutes"
    if remainder == 0:
        return _plural(hours, "hour")
    return f"{_plural(hours, 'hour')} {remainder} minutes"
