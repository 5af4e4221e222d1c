# tipsplit/services/text_normalizer.py
from __future__ import annotations

import re
from typing import List, Optional

from tipsplit.patterns.mappings import BOILERPLATE_PATTERNS, BOILERPLATE_TOKENS


# -----------------------------------------------------------------------------
# Small cleaners (keep them predictable)
# -----------------------------------------------------------------------------

_WS_RE = re.compile(r"\s+")
# Control bytes (Cc) and zero-width marks. Whitespace is mapped to a space before this runs.
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f\u200b-\u200d\u2060\ufeff]")


def _strip_boilerplate_once(text: str) -> str:
    for pat in BOILERPLATE_PATTERNS:
        text = pat.sub(" ", text)
    return text


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _clean(text: str) -> str:
    # NBSP and friends become spaces first, so neighbouring tokens never merge
    return _collapse(_CONTROL_RE.sub("", _WS_RE.sub(" ", text)))


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------

def normalize(raw_text: Optional[str]) -> str:
    """
    Remove report boilerplate and collapse all whitespace (newlines included)
    into single spaces.

    Substitution repeats until nothing changes, so removing one phrase can
    never expose another one that survives: normalize(normalize(x)) == normalize(x).
    """
    if not raw_text:
        return ""

    text = _clean(raw_text)
    while True:
        stripped = _collapse(_strip_boilerplate_once(text))
        if stripped == text:
            return text
        text = stripped


def normalize_line(line: Optional[str]) -> str:
    """Same as normalize(), for one physical OCR line."""
    return normalize(line)


def split_lines(raw_text: Optional[str]) -> List[str]:
    """Physical lines, trimmed, empties dropped. Boilerplate is NOT removed here."""
    if not raw_text:
        return []
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    out: List[str] = []
    for ln in text.split("\n"):
        ln = _clean(ln)
        if ln:
            out.append(ln)
    return out


def token_key(token: str) -> str:
    return "".join(ch for ch in (token or "").lower() if ch.isalpha())


def is_boilerplate_token(token: str) -> bool:
    """
    True for header words embedded in otherwise valid lines ("Store", "Partner:",
    "TOTAL"). Comparison is on the lower-cased letters of the token only.
    """
    key = token_key(token)
    return bool(key) and key in BOILERPLATE_TOKENS
