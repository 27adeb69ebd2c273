from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

MILLISECONDS_THRESHOLD = 2_000_000_000_000

_MS_DIGITS = re.compile(r"^\d{13}$")
_SEC_DIGITS = re.compile(r"^\d{10}$")


def to_epoch_seconds(value: Any) -> int | None:
    """Coerce a stored timestamp into epoch seconds.

    Numbers above ``MILLISECONDS_THRESHOLD`` are milliseconds, smaller numbers
    are seconds. Strings of 13 or 10 digits are milliseconds or seconds
    respectively. Any other string is parsed as ISO-8601 first and then as
    free-form date text, naive values being UTC. Anything unparsable yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _seconds_from_number(value)

    if not isinstance(value, str):
        return None

    text = value.strip()
    if _MS_DIGITS.match(text):
        return int(text) // 1000
    if _SEC_DIGITS.match(text):
        return int(text)
    return _seconds_from_text(text)


def _seconds_from_number(value: int | float) -> int | None:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value > MILLISECONDS_THRESHOLD:
        return math.floor(value / 1000) if isinstance(value, float) else value // 1000
    return math.floor(value)


def _seconds_from_text(text: str) -> int | None:
    if not text:
        return None
    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return math.floor(parsed.timestamp())


def now_seconds() -> int:
    return int(datetime.now(timezone.utc).timestamp())
