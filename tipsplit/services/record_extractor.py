# tipsplit/services/record_extractor.py
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from tipsplit.patterns.mappings import (
    FALLBACK_COLUMN_ORDERS,
    HEADER_SYNONYMS,
    HOURS_FRACTION_RE,
    HOURS_MAX_EXCLUSIVE,
    HOURS_MIN_EXCLUSIVE,
    HOURS_RE,
    LINE_NAME_HOURS,
    LINE_NAME_ID_HOURS,
    LINE_NAME_US_HOURS,
    LINE_STORE_NAME_US_HOURS,
    PARTNER_NUMBER_RE,
    SKIP_LINE_PATTERNS,
    STORE_NUMBER_RE,
)
from tipsplit.patterns.names import clean_partner_name
from tipsplit.schemas import (
    CellTable,
    ExtractionReport,
    ExtractOptions,
    OcrPayload,
    PartnerRecord,
    TableCell,
)
from tipsplit.services.text_normalizer import (
    is_boilerplate_token,
    normalize,
    normalize_line,
    split_lines,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Extraction philosophy:
# - OCR is noisy; never trust a single reading of the page
# - Try the strongest strategy first; the first one that yields rows wins
# - Validate every candidate (name shape, partner-number shape, hours bounds)
# - Never crash on bad input; an empty list means "enter rows by hand"
#
# Strategy order:
#   table     -> document-layout cells, header synonyms or fixed column orders
#   columnar  -> one field per physical line, groups of 4 or 3
#   lines     -> regex line shapes (a)-(e), one row per line
#   tokens    -> token buckets over the collapsed text (run-on OCR)
# -----------------------------------------------------------------------------

RawOcrPayload = Union[str, OcrPayload, Sequence[Union[CellTable, Dict[str, Any]]], Dict[str, Any], None]
Strategy = Callable[[str, ExtractOptions], List[PartnerRecord]]

EXTRACTION_EMPTY = "EXTRACTION_EMPTY"

# Bucket overflow guard for the token fallback
_BUCKET_MAX_TOKENS = 20
_BUCKET_KEEP_TOKENS = 10


# -----------------------------------------------------------------------------
# Entry points
# -----------------------------------------------------------------------------

def extract(payload: RawOcrPayload, options: Optional[ExtractOptions] = None) -> List[PartnerRecord]:
    """
    Main API: OCR payload -> ordered partner records.
    Returns [] when nothing validates.
    """
    return extract_with_report(payload, options).records


def extract_with_report(payload: RawOcrPayload, options: Optional[ExtractOptions] = None) -> ExtractionReport:
    """
    Same as extract(), plus which strategy produced the rows and review flags.

    Raises TypeError only for payload types no OCR service produces (a caller bug).
    """
    opts = options or ExtractOptions()
    text, tables = _coerce_payload(payload)

    report = ExtractionReport()
    try:
        if tables:
            rows = _extract_from_tables(tables, opts)
            if rows:
                report.records = rows
                report.strategy = "table"
                logger.debug("Extracted %d partner rows via table cells", len(rows))
                return report

        name, rows = first_success(TEXT_STRATEGIES, text, opts)
        report.records = rows
        report.strategy = name
        if rows:
            logger.debug("Extracted %d partner rows via %s strategy", len(rows), name)

    except Exception as e:
        # Never break the caller; manual entry is always possible.
        logger.exception("Partner extraction failed")
        report.records = []
        report.strategy = None
        report.flags.append(f"EXTRACTOR_EXCEPTION_{type(e).__name__}".upper())

    if not report.records:
        report.flags.append(EXTRACTION_EMPTY)
    return report


def first_success(
    strategies: Sequence[Tuple[str, Strategy]],
    text: str,
    opts: ExtractOptions,
) -> Tuple[Optional[str], List[PartnerRecord]]:
    """Run strategies in order; the first non-empty result wins."""
    for name, strategy in strategies:
        rows = strategy(text, opts)
        if rows:
            return name, rows
    return None, []


# -----------------------------------------------------------------------------
# Payload coercion
# -----------------------------------------------------------------------------

def _safe_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except Exception:
        return None


def _coerce_table(item: Any) -> CellTable:
    if isinstance(item, CellTable):
        return item
    if not isinstance(item, dict):
        raise TypeError(f"Unsupported table type: {type(item).__name__}")

    # Tolerant: a bad cell is dropped, it never sinks the whole table
    cells: List[TableCell] = []
    for raw in item.get("cells") or []:
        if not isinstance(raw, dict):
            continue
        r = _safe_int(raw.get("rowIndex", raw.get("row_index")))
        c = _safe_int(raw.get("columnIndex", raw.get("column_index")))
        if r is None or c is None or r < 0 or c < 0:
            continue
        content = raw.get("content")
        cells.append(TableCell(row_index=r, column_index=c, content="" if content is None else str(content)))

    return CellTable(
        row_count=_safe_int(item.get("rowCount", item.get("row_count"))) or 0,
        column_count=_safe_int(item.get("columnCount", item.get("column_count"))) or 0,
        cells=cells,
    )


def _coerce_payload(payload: RawOcrPayload) -> Tuple[str, List[CellTable]]:
    if payload is None:
        return "", []
    if isinstance(payload, str):
        return payload, []
    if isinstance(payload, OcrPayload):
        return payload.content or "", list(payload.tables)
    if isinstance(payload, dict):
        if "cells" in payload:
            return "", [_coerce_table(payload)]
        tables = payload.get("tables") or []
        if not isinstance(tables, (list, tuple)):
            tables = []
        return str(payload.get("content") or ""), [_coerce_table(t) for t in tables]
    if isinstance(payload, (list, tuple)):
        return "", [_coerce_table(t) for t in payload]
    raise TypeError(f"Unsupported OCR payload type: {type(payload).__name__}")


# -----------------------------------------------------------------------------
# Validation helpers (shared by every strategy)
# -----------------------------------------------------------------------------

_TOTAL_WORD_RE = re.compile(r"\btotal\b", re.I)
# any Unicode letter ("Nguyễn", "O’Brien", "王")
_LETTER_RE = re.compile(r"[^\W\d_]")


def _hours_in_range(hours: Optional[float]) -> bool:
    return hours is not None and HOURS_MIN_EXCLUSIVE < hours < HOURS_MAX_EXCLUSIVE


def _parse_hours(token: str, *, require_fraction: bool = False) -> Optional[float]:
    s = (token or "").strip()
    pat = HOURS_FRACTION_RE if require_fraction else HOURS_RE
    if not pat.match(s):
        return None
    try:
        val = float(s)
    except ValueError:
        return None
    return val if _hours_in_range(val) else None


def _parse_cell_hours(content: str) -> Optional[float]:
    # Table cells: strip units/junk ("9.22 hrs", "~18.48") but keep digits and dots
    s = re.sub(r"[^0-9.]", "", content or "")
    if not s:
        return None
    try:
        val = float(s)
    except ValueError:
        return None
    return val if _hours_in_range(val) else None


def _is_partner_number(s: str) -> bool:
    return bool(PARTNER_NUMBER_RE.match(re.sub(r"\s+", "", s or "")))


def _is_skip_line(line: str) -> bool:
    return any(p.search(line) for p in SKIP_LINE_PATTERNS)


def is_valid_name(name: str) -> bool:
    """
    A finalized (already cleaned) name is usable when it has letters, is not a
    number of any kind, and is not made only of report header words.
    """
    if not name or len(name) < 2:
        return False
    if not _LETTER_RE.search(name):
        return False
    if _is_partner_number(name) or STORE_NUMBER_RE.match(name):
        return False
    if _TOTAL_WORD_RE.search(name):
        return False
    # run-on OCR: another row's number or hours swallowed into this name
    for t in name.split():
        bare = t.strip(",;:|.")
        if PARTNER_NUMBER_RE.match(bare) or HOURS_FRACTION_RE.match(bare):
            return False
    word_tokens = [t for t in name.split() if _LETTER_RE.search(t)]
    if word_tokens and all(is_boilerplate_token(t) for t in word_tokens):
        return False
    return True


def finalize_record(name: str, number: str, hours: Optional[float]) -> Optional[PartnerRecord]:
    """Clean + validate a candidate row. Returns None when it does not hold up."""
    cleaned = clean_partner_name(name)
    if not is_valid_name(cleaned):
        return None
    if not _hours_in_range(hours):
        return None
    num = re.sub(r"\s+", "", number or "")
    if num and not PARTNER_NUMBER_RE.match(num):
        num = ""
    return PartnerRecord(name=cleaned, number=num.upper() if num[:2].lower() == "us" else num, hours=float(hours))


class _RecordCollector:
    """Ordered, de-duplicating sink for finalized records."""

    def __init__(self, dedupe: str) -> None:
        self.records: List[PartnerRecord] = []
        self._seen: Set[Any] = set()
        self._dedupe = dedupe

    def _key(self, rec: PartnerRecord) -> Any:
        if self._dedupe == "record":
            return (rec.name.lower(), rec.number.lower(), round(rec.hours, 2))
        return rec.name.lower()

    def add(self, rec: Optional[PartnerRecord]) -> bool:
        if rec is None:
            return False
        key = self._key(rec)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.records.append(rec)
        return True


# -----------------------------------------------------------------------------
# Strategy 1: structured table (document-layout cells)
# -----------------------------------------------------------------------------

def _rows_of(table: CellTable) -> Dict[int, Dict[int, str]]:
    rows: Dict[int, Dict[int, str]] = {}
    for cell in table.cells:
        row = rows.setdefault(cell.row_index, {})
        text = (cell.content or "").strip()
        # merged/duplicated cells: keep the first non-empty reading
        if text and not row.get(cell.column_index):
            row[cell.column_index] = text
        else:
            row.setdefault(cell.column_index, text)
    return rows


def classify_header(text: str) -> Optional[str]:
    """Map a header cell to one of store/hours/number/name, or None."""
    lo = " " + re.sub(r"\s+", " ", (text or "").lower()).strip()
    if not lo.strip():
        return None
    for kind, synonyms in HEADER_SYNONYMS.items():
        if any(s in lo for s in synonyms):
            return kind
    return None


def _detect_header(rows: Dict[int, Dict[int, str]], max_scan: int = 5) -> Optional[Tuple[int, Dict[str, int]]]:
    for row_idx in sorted(rows)[:max_scan]:
        columns: Dict[str, int] = {}
        for col_idx in sorted(rows[row_idx]):
            kind = classify_header(rows[row_idx][col_idx])
            if kind and kind not in columns:
                columns[kind] = col_idx
        if "name" in columns and "hours" in columns:
            return row_idx, columns
    return None


def _rows_with_header(
    rows: Dict[int, Dict[int, str]],
    header_idx: int,
    columns: Dict[str, int],
    out: _RecordCollector,
) -> None:
    for row_idx in sorted(rows):
        if row_idx <= header_idx:
            continue
        cells = rows[row_idx]
        name = cells.get(columns["name"], "")
        hours = _parse_cell_hours(cells.get(columns["hours"], ""))
        number = ""
        if "number" in columns:
            candidate = cells.get(columns["number"], "")
            if _is_partner_number(candidate):
                number = candidate
        out.add(finalize_record(name, number, hours))


def _validate_ordering(values: List[str], order: List[str]) -> Optional[PartnerRecord]:
    if len(values) < len(order):
        return None
    fields = dict(zip(order, values))
    if "store" in fields and not STORE_NUMBER_RE.match(fields["store"].strip()):
        return None
    if "number" in fields and not _is_partner_number(fields["number"]):
        return None
    return finalize_record(fields["name"], fields.get("number", ""), _parse_cell_hours(fields["hours"]))


def _rows_by_fixed_order(rows: Dict[int, Dict[int, str]], out: _RecordCollector) -> None:
    for row_idx in sorted(rows):
        cells = rows[row_idx]
        if not cells:
            continue
        width = max(cells) + 1
        values = [cells.get(c, "") for c in range(width)]
        for order in FALLBACK_COLUMN_ORDERS:
            rec = _validate_ordering(values, order)
            if rec is not None:
                out.add(rec)
                break


def _extract_from_tables(tables: List[CellTable], opts: ExtractOptions) -> List[PartnerRecord]:
    out = _RecordCollector(opts.dedupe)
    for table in tables:
        rows = _rows_of(table)
        if not rows:
            continue
        header = _detect_header(rows)
        if header is not None:
            _rows_with_header(rows, header[0], header[1], out)
        else:
            _rows_by_fixed_order(rows, out)
    return out.records


# -----------------------------------------------------------------------------
# Strategy 2: columnar-per-line (one value per physical line)
# -----------------------------------------------------------------------------

def _columnar_name_ok(line: str) -> bool:
    if re.fullmatch(r"[\d\s.,]+", line):
        return False
    if _is_partner_number(line) or _is_skip_line(line):
        return False
    return True


def _columnar_group(group: List[str], with_store: bool) -> Optional[PartnerRecord]:
    if with_store:
        if not STORE_NUMBER_RE.match(group[0]):
            return None
        group = group[1:]
    name, number, hours_text = group
    if not _columnar_name_ok(name):
        return None
    if not _is_partner_number(number):
        return None
    hours = _parse_hours(hours_text)
    if hours is None:
        return None
    return finalize_record(name, number, hours)


def _extract_columnar(text: str, opts: ExtractOptions) -> List[PartnerRecord]:
    lines = [ln for ln in split_lines(text) if not _is_skip_line(ln)]
    if len(lines) < 3:
        return []

    start = next((i for i, ln in enumerate(lines) if STORE_NUMBER_RE.match(ln)), 0)
    out = _RecordCollector(opts.dedupe)
    i = start
    while i < len(lines):
        if i + 4 <= len(lines):
            rec = _columnar_group(lines[i:i + 4], with_store=True)
            if rec is not None:
                out.add(rec)
                i += 4
                continue
        if i + 3 <= len(lines):
            rec = _columnar_group(lines[i:i + 3], with_store=False)
            if rec is not None:
                out.add(rec)
                i += 3
                continue
        i += 1
    return out.records


# -----------------------------------------------------------------------------
# Strategy 3: line shapes (a)-(e)
# -----------------------------------------------------------------------------

Candidate = Tuple[str, str, Optional[float]]


def _shape_store_us(line: str, opts: ExtractOptions) -> Optional[Candidate]:
    m = LINE_STORE_NAME_US_HOURS.match(line)
    if not m:
        return None
    return m.group(2), m.group(3), _parse_hours(m.group(4))


def _shape_us(line: str, opts: ExtractOptions) -> Optional[Candidate]:
    m = LINE_NAME_US_HOURS.match(line)
    if not m:
        return None
    return m.group(1), m.group(2), _parse_hours(m.group(3))


def _shape_numeric_id(line: str, opts: ExtractOptions) -> Optional[Candidate]:
    m = LINE_NAME_ID_HOURS.match(line)
    if not m:
        return None
    return m.group(1), m.group(2), _parse_hours(m.group(3))


def _shape_name_hours(line: str, opts: ExtractOptions) -> Optional[Candidate]:
    m = LINE_NAME_HOURS.match(line)
    if not m:
        return None
    return m.group(1), "", _parse_hours(m.group(2), require_fraction=True)


def _shape_tokens(line: str, opts: ExtractOptions) -> Optional[Candidate]:
    tokens = line.split()
    if len(tokens) < 2:
        return None

    hours = _parse_hours(tokens[-1])
    if hours is None:
        return None

    name_tokens = tokens[:-1]
    number = ""
    if name_tokens and _is_partner_number(name_tokens[-1]):
        number = name_tokens.pop()
    if name_tokens and STORE_NUMBER_RE.match(name_tokens[0]):
        name_tokens = name_tokens[1:]

    name_tokens = [t for t in name_tokens if not is_boilerplate_token(t)]
    # a long "name" is a paragraph that happens to end in a number
    if not name_tokens or len(name_tokens) > opts.max_name_tokens:
        return None
    return " ".join(name_tokens), number, hours


LINE_SHAPES: List[Callable[[str, ExtractOptions], Optional[Candidate]]] = [
    _shape_store_us,
    _shape_us,
    _shape_numeric_id,
    _shape_name_hours,
    _shape_tokens,
]


def match_line(line: str, opts: Optional[ExtractOptions] = None) -> Optional[PartnerRecord]:
    """First line shape that matches AND validates wins."""
    opts = opts or ExtractOptions()
    for shape in LINE_SHAPES:
        cand = shape(line, opts)
        if cand is None:
            continue
        rec = finalize_record(*cand)
        if rec is not None:
            return rec
    return None


def _extract_line_patterns(text: str, opts: ExtractOptions) -> List[PartnerRecord]:
    out = _RecordCollector(opts.dedupe)
    for raw in split_lines(text):
        if len(raw) < 3 or _is_skip_line(raw):
            continue
        line = normalize_line(raw)
        if not line:
            continue
        out.add(match_line(line, opts))
    return out.records


# -----------------------------------------------------------------------------
# Strategy 4: token buckets (single run-on line, mangled spacing)
# -----------------------------------------------------------------------------

def _bucket_name(tokens: List[str]) -> str:
    if tokens and STORE_NUMBER_RE.match(tokens[0]):
        tokens = tokens[1:]
    kept = [t for t in tokens if _LETTER_RE.search(t) and not is_boilerplate_token(t)]
    return " ".join(kept)


def _extract_token_buckets(text: str, opts: ExtractOptions) -> List[PartnerRecord]:
    out = _RecordCollector(opts.dedupe)
    name_tokens: List[str] = []
    number = ""

    for token in normalize(text).split():
        bare = token.strip(",;:|")

        hours = _parse_hours(bare, require_fraction=True)
        if hours is not None:
            if name_tokens:
                out.add(finalize_record(_bucket_name(name_tokens), number, hours))
            name_tokens = []
            number = ""
            continue

        if PARTNER_NUMBER_RE.match(bare):
            number = bare
            continue

        if number:
            # a partner number with no hours after it: that row is lost, start over
            name_tokens = []
            number = ""
        name_tokens.append(token)
        if len(name_tokens) > _BUCKET_MAX_TOKENS:
            name_tokens = name_tokens[-_BUCKET_KEEP_TOKENS:]

    return out.records


TEXT_STRATEGIES: List[Tuple[str, Strategy]] = [
    ("columnar", _extract_columnar),
    ("lines", _extract_line_patterns),
    ("tokens", _extract_token_buckets),
]
