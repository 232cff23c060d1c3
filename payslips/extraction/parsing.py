"""
Value Parsing

Turns raw matched text into typed field values. Every parser returns None
for text it cannot interpret; callers treat that as a rejected candidate.
"""

import re

from payslips.extraction.patterns import BARE_NUMBER

MONTHS: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mac": 3,
    "mar": 3,
    "apr": 4,
    "mei": 5,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "ogo": 8,
    "aug": 8,
    "sep": 9,
    "okt": 10,
    "oct": 10,
    "nov": 11,
    "dis": 12,
    "dec": 12,
}

_NUMERIC_PERIOD = re.compile(r"(\d{1,2})\s*[/\-.]\s*(\d{4})")
_NAMED_PERIOD = re.compile(r"([A-Za-z]{3,9})\.?\s+(\d{4})")


def parse_number(raw: str) -> float | None:
    """
    Parse a monetary or percentage string.

    Handles formats like: RM 3,845.31, 368.30, 91.26%
    """
    match = BARE_NUMBER.fullmatch(raw.strip())
    if not match:
        return None
    cleaned = match.group("value").replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_name(raw: str) -> str | None:
    """Collapse whitespace and trim punctuation; casing is kept as printed."""
    name = re.sub(r"\s+", " ", raw).strip(" .,:;-")
    if not 3 <= len(name) <= 80:
        return None
    if re.search(r"\d|:", name) or not re.search(r"[A-Za-z]{2,}", name):
        return None
    return name


def parse_identifier(raw: str) -> str | None:
    """Employee numbers are alphanumeric and contain at least one digit."""
    identifier = re.sub(r"[^A-Za-z0-9]", "", raw)
    if not 4 <= len(identifier) <= 15:
        return None
    if not re.search(r"\d", identifier):
        return None
    return identifier.upper()


def parse_period(raw: str) -> str | None:
    """
    Normalize a pay period to MM/YYYY.

    Handles formats like: 05/2024, 5-2024, Mei 2024, MAY 2024
    """
    raw = raw.strip()
    match = _NUMERIC_PERIOD.fullmatch(raw)
    if match:
        month = int(match.group(1))
        year = int(match.group(2))
    else:
        match = _NAMED_PERIOD.fullmatch(raw)
        if not match:
            return None
        month = MONTHS.get(match.group(1)[:3].lower(), 0)
        year = int(match.group(2))

    if not 1 <= month <= 12 or not 1990 <= year <= 2100:
        return None
    return f"{month:02d}/{year}"
