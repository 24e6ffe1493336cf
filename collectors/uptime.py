"""Parsing of the legacy API's textual uptime ("3 days 4 hours 5 minutes")."""

from __future__ import annotations

import re
from datetime import timedelta

from pytimeparse.timeparse import timeparse

from scpclient.errors import UptimeParseError

_UNIT_WORDS = {
    "day": "d",
    "days": "d",
    "hour": "h",
    "hours": "h",
    "minute": "m",
    "minutes": "m",
    "second": "s",
    "seconds": "s",
}

_WORD_RE = re.compile(r"(\d+)\s*(days?|hours?|minutes?|seconds?)\b", re.IGNORECASE)

# Compact tokens only, largest unit first.
_COMPACT_RE = re.compile(r"(?=\d)(\d+d)?(\d+h)?(\d+m)?(\d+s)?")


def normalize_uptime(text: str) -> str:
    """Rewrite verbose unit words into compact tokens: "1 day 2 hours" -> "1d2h"."""
    tokens = [f"{n}{_UNIT_WORDS[unit.lower()]}" for n, unit in _WORD_RE.findall(text)]
    leftover = _WORD_RE.sub("", text).replace(",", "").strip()
    if leftover:
        raise UptimeParseError(f"unexpected text in uptime {text!r}: {leftover!r}")
    return "".join(tokens)


def parse_duration(compact: str) -> timedelta:
    """Parse a compact duration such as "3d4h5m" into a timedelta."""
    seconds = timeparse(compact) if _COMPACT_RE.fullmatch(compact) else None
    if seconds is None:
        raise UptimeParseError(f"invalid duration {compact!r}")
    return timedelta(seconds=seconds)


def parse_uptime(text: str) -> timedelta:
    return parse_duration(normalize_uptime(text))
