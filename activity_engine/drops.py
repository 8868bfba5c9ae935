"""Lenient parsing of drop tokens and numeric text from scraped records."""

from __future__ import annotations

import re

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_DROP_AMOUNT = re.compile(r"^(\d[\d,]*)\s+(.+)$")
_BARE_NUMBER = re.compile(r"^[\d,]+$")
_EXP_ONLY = re.compile(r"^\d+\s*exp$", re.IGNORECASE)


def parse_int(text: str | int | None) -> int | None:
    """Parse the leading integer of a text value, ignoring thousands separators."""

    if text is None:
        return None
    if isinstance(text, bool):
        return int(text)
    if isinstance(text, int):
        return text
    match = _LEADING_INT.match(str(text).replace(",", ""))
    if not match:
        return None
    return int(match.group(1))


def non_negative_int(text: str | int | None) -> int:
    """Parse an integer, treating missing, unparseable and negative values as zero."""

    value = parse_int(text)
    if value is None or value < 0:
        return 0
    return value


def parse_float(text: str | float | None) -> float:
    if text is None:
        return 0.0
    try:
        return float(str(text).replace(",", ""))
    except ValueError:
        return 0.0


def parse_drops(text: str | None) -> list[str]:
    """Split a semicolon-separated drops field into trimmed tokens."""

    if not text or not text.strip():
        return []
    return [token.strip() for token in text.split(";") if token.strip()]


def parse_drop_amount(token: str) -> tuple[int, str]:
    """Split "5 Gold" into (5, "Gold"); tokens without an amount count once."""

    match = _DROP_AMOUNT.match(token.strip())
    if match:
        return int(match.group(1).replace(",", "")), match.group(2).strip()
    return 1, token.strip()


def is_valid_drop(token: str, name: str) -> bool:
    """Reject tokens that are really mis-parsed experience text."""

    trimmed = token.strip()
    if not trimmed or _BARE_NUMBER.match(trimmed):
        return False
    item = (name or "").strip()
    if not item:
        return False
    lower = item.lower()
    if "experience" in lower or "exp " in lower or _EXP_ONLY.match(item) or _EXP_ONLY.match(trimmed):
        return False
    return True
