# tipsplit/patterns/names.py
from __future__ import annotations

import re
from typing import Optional


# ------------------------------------------------------------------------------
# Partner name cleaning
# ------------------------------------------------------------------------------
# Every extraction strategy finalizes names through clean_partner_name() so the
# two-period join (name_key) sees the same spelling no matter which strategy
# produced the row.
# ------------------------------------------------------------------------------

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

_DATE_PATTERNS = [
    # 08/01/2025 - 08/07/2025, 8/1 - 8/7
    re.compile(r"\d{1,2}/\d{1,2}(?:/\d{2,4})?\s*[-–—]\s*\d{1,2}/\d{1,2}(?:/\d{2,4})?"),
    # Aug 1, 2025 / August 01 2025
    re.compile(r"\b" + _MONTHS + r"\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s*(?:\d{4})?\b", re.I),
    # 1 Aug 2025
    re.compile(r"\b\d{1,2}\s+" + _MONTHS + r"\.?,?\s*(?:\d{4})?\b", re.I),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}"),
    re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}"),
]

_TIME_RE = re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?\b", re.I)
_STORE_PREFIX_RE = re.compile(r"^\d{5}\s+")

_LEADING_JUNK_RE = re.compile(r"^[~=\-_*#@!$%^&+|:;.,'\"`()\[\]{}<>/\\\s]+")
# Trailing periods stay: "Jodie O." is a legitimate initial.
_TRAILING_JUNK_RE = re.compile(r"[~=\-_*#@!$%^&+|:;,'\"`(\[{<>/\\\s]+$")


def clean_partner_name(name: Optional[str]) -> str:
    """
    Strip dates, date ranges, times and prefix/suffix symbols from a partner
    name and collapse whitespace.

    Examples:
        "~Ailuogwemhe, Jodie O" -> "Ailuogwemhe, Jodie O"
        "Doe, Jane 08/01/2025 - 08/07/2025" -> "Doe, Jane"
        "== Smith, Al 10:42 PM" -> "Smith, Al"
    """
    if not name:
        return ""

    cleaned = name
    for pat in _DATE_PATTERNS:
        cleaned = pat.sub(" ", cleaned)
    cleaned = _TIME_RE.sub(" ", cleaned)

    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = _LEADING_JUNK_RE.sub("", cleaned)
    cleaned = _STORE_PREFIX_RE.sub("", cleaned)
    cleaned = _TRAILING_JUNK_RE.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def name_key(name: Optional[str]) -> str:
    """Join key for matching a partner across reports: lower-case letters only."""
    return "".join(ch for ch in (name or "").lower() if ch.isalpha())
