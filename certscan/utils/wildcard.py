"""Case-insensitive ``*`` wildcard matching for exclusion rules."""

from __future__ import annotations


def match_wildcard(pattern: str, value: str) -> bool:
    """Return True if *value* matches *pattern*.

    Supported forms: exact, ``*`` (anything, including ""), ``prefix*``,
    ``*suffix`` and ``*contains*``. An empty pattern never matches.
    """
    if not pattern:
        return False
    pattern = pattern.lower()
    value = value.lower()
    if pattern == "*":
        return True
    starts = pattern.startswith("*")
    ends = pattern.endswith("*")
    if starts and ends:
        return pattern[1:-1] in value
    if starts:
        return value.endswith(pattern[1:])
    if ends:
        return value.startswith(pattern[:-1])
    return value == pattern
