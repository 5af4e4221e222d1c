# tipsplit/services/ocr_service.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from tipsplit import config
from tipsplit.schemas import CellTable, OcrPayload, TableCell

logger = logging.getLogger(__name__)

# Statuses the analyze operation reports while polling
_DONE = {"succeeded", "completed"}
_FAILED = {"failed"}


# -----------------------------------------------------------------------------
# Public API (matches the upload pipeline)
# -----------------------------------------------------------------------------

def analyze_document(
    data: bytes,
    *,
    http: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    endpoint: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Tuple[Optional[OcrPayload], str, str]:
    """
    Returns: (payload, ocr_status, ocr_source)

    ocr_status:
      - "success"
      - "failed"

    One submission, then a bounded polling loop
    (OCR_MAX_POLL_ATTEMPTS x OCR_POLL_INTERVAL_SECONDS). Never raises.
    """
    endpoint = (endpoint if endpoint is not None else config.AZURE_DOCINTEL_ENDPOINT).rstrip("/")
    api_key = api_key if api_key is not None else config.AZURE_DOCINTEL_KEY
    if not endpoint or not api_key:
        return None, "failed", "not_configured"
    if not data:
        return None, "failed", "empty_upload"

    http = http or requests.Session()
    source = f"azure:{config.AZURE_DOCINTEL_MODEL}"

    try:
        operation_url = _submit(http, endpoint, api_key, data)
        if not operation_url:
            return None, "failed", "no_operation_location"

        result, status = _poll(http, operation_url, api_key, sleep)
        if status != "success":
            return None, "failed", status

        payload = parse_analyze_result(result or {})
        return payload, "success", source

    except requests.RequestException as e:
        logger.warning("OCR request failed: %s", e)
        return None, "failed", f"http_error:{type(e).__name__}"
    except ValueError as e:
        # bad JSON from the service
        logger.warning("OCR response unreadable: %s", e)
        return None, "failed", "bad_response"


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------

def _analyze_url(endpoint: str) -> str:
    return (
        f"{endpoint}/documentintelligence/documentModels/{config.AZURE_DOCINTEL_MODEL}:analyze"
        f"?api-version={config.AZURE_DOCINTEL_API_VERSION}"
    )


def _submit(http: requests.Session, endpoint: str, api_key: str, data: bytes) -> Optional[str]:
    url = _analyze_url(endpoint)
    logger.info("Submitting %d bytes for document analysis", len(data))
    resp = http.post(
        url,
        headers={
            "Ocp-Apim-Subscription-Key": api_key,
            "Content-Type": "application/octet-stream",
        },
        data=data,
        timeout=config.OCR_HTTP_TIMEOUT_SECONDS,
    )
    resp.raise_for_status()
    return resp.headers.get("Operation-Location") or resp.headers.get("operation-location")


def _poll(
    http: requests.Session,
    operation_url: str,
    api_key: str,
    sleep: Callable[[float], None],
) -> Tuple[Optional[Dict[str, Any]], str]:
    """(result_json, "success" | "analysis_failed" | "bad_response" | "timeout")"""
    for attempt in range(1, max(1, config.OCR_MAX_POLL_ATTEMPTS) + 1):
        sleep(config.OCR_POLL_INTERVAL_SECONDS)
        resp = http.get(
            operation_url,
            headers={"Ocp-Apim-Subscription-Key": api_key},
            timeout=config.OCR_HTTP_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        result = resp.json()
        if not isinstance(result, dict):
            logger.warning("Poll %d: expected a JSON object, got %s", attempt, type(result).__name__)
            return None, "bad_response"
        status = str(result.get("status") or "").lower()
        logger.debug("Poll %d: status=%s", attempt, status or "?")

        if status in _DONE:
            return result, "success"
        if status in _FAILED:
            logger.warning("Document analysis failed: %s", result.get("error"))
            return None, "analysis_failed"
        # "notStarted" / "running": keep polling

    logger.warning("Document analysis timed out after %d polls", config.OCR_MAX_POLL_ATTEMPTS)
    return None, "timeout"


# -----------------------------------------------------------------------------
# Response shapes
# -----------------------------------------------------------------------------

def _safe_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except Exception:
        return None


def _as_dict(v: Any) -> Dict[str, Any]:
    return v if isinstance(v, dict) else {}


def _as_list(v: Any) -> List[Any]:
    return v if isinstance(v, list) else []


def _lines_of(pages: Any, text_key: str) -> List[str]:
    lines: List[str] = []
    for page in _as_list(pages):
        for line in _as_list(_as_dict(page).get("lines")):
            line = _as_dict(line)
            text = line.get(text_key) or line.get("text") or ""
            if isinstance(text, str) and text:
                lines.append(text)
    return lines


def _table_of(raw: Dict[str, Any]) -> CellTable:
    # A bad cell is dropped; it never sinks the rest of the table
    cells: List[TableCell] = []
    for c in _as_list(raw.get("cells")):
        c = _as_dict(c)
        r = _safe_int(c.get("rowIndex"))
        col = _safe_int(c.get("columnIndex"))
        if r is None or col is None or r < 0 or col < 0:
            continue
        content = c.get("content")
        cells.append(TableCell(row_index=r, column_index=col, content="" if content is None else str(content)))

    return CellTable(
        row_count=_safe_int(raw.get("rowCount")) or 0,
        column_count=_safe_int(raw.get("columnCount")) or 0,
        cells=cells,
    )


def parse_analyze_result(result: Any) -> OcrPayload:
    """
    Turn an analyze response into the extractor's payload.

    Handles:
      - Document Intelligence: analyzeResult.tables + analyzeResult.content
      - Document Intelligence without content: analyzeResult.pages[].lines[].content
      - Computer Vision Read: analyzeResult.readResults[].lines[].text

    Unexpected shapes are skipped, never raised.
    """
    ar = _as_dict(_as_dict(result).get("analyzeResult"))

    tables = [_table_of(t) for t in _as_list(ar.get("tables")) if isinstance(t, dict)]

    content = ar.get("content")
    if not isinstance(content, str) or not content:
        lines = _lines_of(ar.get("pages"), "content") or _lines_of(ar.get("readResults"), "text")
        content = "\n".join(lines)

    return OcrPayload(content=content, tables=tables)
