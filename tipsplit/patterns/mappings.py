# tipsplit/patterns/mappings.py
from __future__ import annotations

import re
from typing import Dict, FrozenSet, List, Pattern


# ============================================================================
# REPORT VOCABULARY
# Everything the tip distribution report prints that is NOT partner data.
# Extend from real uploads; keep patterns case-insensitive.
# ============================================================================

# Substrings removed by the text normalizer (each match -> one space).
BOILERPLATE_PATTERNS: List[Pattern[str]] = [
    # Title / disclaimer
    re.compile(r"tip\s*distribution\s*report", re.I),
    re.compile(r"data\s*disclaimer\s*:?", re.I),
    re.compile(r"includes\s+all\s+updates[^.\n]*\.?", re.I),
    # Store labels
    re.compile(r"home\s*store\s*:?", re.I),
    re.compile(r"store\s*(?:number|no\.|#)\s*:?", re.I),
    # Period / execution stamps
    re.compile(r"time\s*period\s*:?", re.I),
    re.compile(r"executed\s*(?:by|on)\s*:?", re.I),
    # Column headers
    re.compile(r"total\s*tippable\s*hours\s*:?", re.I),
    re.compile(r"tippable\s*hours", re.I),
    re.compile(r"partner\s*(?:name|number|#)", re.I),
]

# Whole lines dropped before line-pattern parsing.
SKIP_LINE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"partner\s*name", re.I),
    re.compile(r"home\s*store", re.I),
    re.compile(r"tippable.*hours", re.I),
    re.compile(r"total\s*tippable", re.I),
    re.compile(r"time\s*period", re.I),
    re.compile(r"executed", re.I),
    re.compile(r"store\s*number", re.I),
    re.compile(r"data\s*disclaimer", re.I),
    re.compile(r"tip\s*distribution", re.I),
    re.compile(r"^\s*total\s*$", re.I),
    re.compile(r"includes\s*all\s*updates", re.I),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}"),
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?$", re.I),
    re.compile(r"^page\s*\d+(?:\s*of\s*\d+)?$", re.I),
]

# Single words that never belong to a partner name (letters-only, lower case).
BOILERPLATE_TOKENS: FrozenSet[str] = frozenset({
    "home", "store", "partner", "name", "number", "total", "tippable", "hours",
    "time", "period", "report", "tip", "tips", "distribution", "weekly", "week",
    "ending", "executed", "data", "disclaimer",
})


# ============================================================================
# FIELD SHAPES
# ============================================================================

STORE_NUMBER_RE = re.compile(r"^\d{5}$")
PARTNER_NUMBER_RE = re.compile(r"^(?:US\d+|\d{6,})$", re.I)
# Hours with or without a fractional part
HOURS_RE = re.compile(r"^\d+(?:\.\d+)?$")
# Hours that must carry a fractional part ("32.56", not "32")
HOURS_FRACTION_RE = re.compile(r"^\d+\.\d+$")

HOURS_MIN_EXCLUSIVE = 0.0
HOURS_MAX_EXCLUSIVE = 200.0


# ============================================================================
# LINE SHAPES (ordered strongest -> most permissive)
# ============================================================================

# (a) "69600 Ailuogwemhe, Jodie O US37008498 9.22"
LINE_STORE_NAME_US_HOURS = re.compile(r"^(\d{5})\s+(.+?)\s+(US\d+)\s+(\d+(?:\.\d+)?)$", re.I)
# (b) "Ailuogwemhe, Jodie O US37008498 9.22"
LINE_NAME_US_HOURS = re.compile(r"^(.+?)\s+(US\d+)\s+(\d+(?:\.\d+)?)$", re.I)
# (c) "John Doe 1234567 32.56"
LINE_NAME_ID_HOURS = re.compile(r"^(.+?)\s+(\d{6,})\s+(\d+(?:\.\d+)?)$")
# (d) "John Doe 32.56"
LINE_NAME_HOURS = re.compile(r"^(.+?)\s+(\d+\.\d+)$")


# ============================================================================
# TABLE HEADER SYNONYMS
# Checked in this order: a "Store Number" header is a store column, not a
# partner-number column.
# ============================================================================

HEADER_SYNONYMS: Dict[str, List[str]] = {
    "store": ["home store", "store number", "store #", "store"],
    "hours": ["total tippable hours", "tippable hours", "hours worked", "tippable", "hours", "worked", "hrs"],
    "number": ["partner number", "partner #", "partner id", "employee number", "employee id", "number", "#", " id"],
    "name": ["partner name", "employee name", "team member", "barista", "employee", "partner", "name"],
}

# Fixed column orders tried when no header row is recognised.
FALLBACK_COLUMN_ORDERS: List[List[str]] = [
    ["store", "name", "number", "hours"],
    ["name", "number", "hours"],
    ["name", "hours"],
]
