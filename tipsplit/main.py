# tipsplit/main.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

# =========================
# Config first (loads .env)
# =========================
from tipsplit import config

from tipsplit.schemas import (
    AllocationOutcome,
    BillBreakdown,
    CalculateRequest,
    ExtractionReport,
    ExtractOptions,
    ExtractRequest,
    HolidayRequest,
    HolidaySplitOutcome,
    OcrPayload,
    OCRMeta,
    PartnerPatch,
    PartnerRecord,
    PartnerRow,
    ReallocationOutcome,
    SessionCalculateRequest,
    SessionState,
    UploadResponse,
)
from tipsplit.services import bill_service, ocr_service, record_extractor, session_service, tip_allocator

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Partner Tips Distribution Engine", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------------------------------------------------------
# Small helpers (keep the pipe stable)
# -----------------------------------------------------------------------------

def _session_or_404(session_id: str) -> session_service.TipSession:
    try:
        return session_service.load_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


def _raise_on_errors(errors: Any) -> None:
    # Validation failures are user errors, reported by name
    if errors:
        raise HTTPException(status_code=422, detail={"errors": list(errors)})


def _extract_options(dedupe: Optional[str]) -> ExtractOptions:
    return ExtractOptions(dedupe=dedupe or config.get_engine_config().dedupe)


def _extract_request(req: ExtractRequest) -> ExtractionReport:
    payload = OcrPayload(content=req.text or "", tables=req.tables)
    return record_extractor.extract_with_report(payload, _extract_options(req.dedupe))


# -----------------------------------------------------------------------------
# Stateless endpoints
# -----------------------------------------------------------------------------

@app.get("/")
def root() -> Dict[str, Any]:
    cfg = config.get_engine_config()
    return {
        "status": "ok",
        "service": "tipsplit",
        "payout_rounding": cfg.payout_rounding,
        "regular_period_source": cfg.regular_period_source,
        "ocr_configured": bool(config.AZURE_DOCINTEL_ENDPOINT and config.AZURE_DOCINTEL_KEY),
    }


@app.post("/extract", response_model=ExtractionReport)
def extract(req: ExtractRequest) -> ExtractionReport:
    return _extract_request(req)


@app.post("/calculate", response_model=AllocationOutcome)
def calculate(req: CalculateRequest) -> AllocationOutcome:
    policy = req.payout_rounding or config.get_engine_config().payout_rounding
    outcome = tip_allocator.allocate(req.total_cash, req.partners, policy)
    _raise_on_errors(outcome.errors)
    return outcome


@app.get("/bills/{amount}", response_model=BillBreakdown)
def bills(amount: int) -> BillBreakdown:
    if amount < 0:
        raise HTTPException(status_code=422, detail="Amount must be zero or more whole dollars")
    return bill_service.decompose(amount)


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------

@app.post("/sessions", response_model=SessionState)
def create_session() -> SessionState:
    return session_service.create_session(config.get_engine_config()).state()


@app.get("/sessions/{session_id}", response_model=SessionState)
def get_session(session_id: str) -> SessionState:
    return _session_or_404(session_id).state()


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str) -> Dict[str, Any]:
    if not session_service.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"deleted": session_id}


@app.post("/sessions/{session_id}/partners", response_model=PartnerRow)
def add_partner(session_id: str, record: Optional[PartnerRecord] = None) -> PartnerRow:
    return _session_or_404(session_id).add_row(record)


@app.patch("/sessions/{session_id}/partners/{row_id}", response_model=PartnerRow)
def patch_partner(session_id: str, row_id: int, patch: PartnerPatch) -> PartnerRow:
    session = _session_or_404(session_id)
    try:
        return session.update_row(row_id, patch)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Partner row not found: {row_id}")


@app.delete("/sessions/{session_id}/partners/{row_id}", response_model=SessionState)
def delete_partner(session_id: str, row_id: int) -> SessionState:
    session = _session_or_404(session_id)
    try:
        session.remove_row(row_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Partner row not found: {row_id}")
    return session.state()


@app.delete("/sessions/{session_id}/partners", response_model=SessionState)
def clear_partners(session_id: str) -> SessionState:
    session = _session_or_404(session_id)
    session.clear()
    return session.state()


@app.post("/sessions/{session_id}/import", response_model=UploadResponse)
def import_text(session_id: str, req: ExtractRequest) -> UploadResponse:
    session = _session_or_404(session_id)
    report = _extract_request(req)
    # Nothing found: keep whatever the user already typed
    if report.records:
        session.load_records(report.records)
    return UploadResponse(
        session_id=session.id,
        filename="",
        ocr=OCRMeta(ocr_status="skipped", ocr_source="text", ocr_text=req.text or "", table_count=len(req.tables)),
        extraction=report,
        partners=session.partners,
    )


@app.post("/sessions/{session_id}/upload", response_model=UploadResponse)
def upload(session_id: str, file: UploadFile = File(...)) -> UploadResponse:
    # Must stay a plain def: OCR polling blocks, FastAPI runs this in the threadpool
    session = _session_or_404(session_id)
    if not file or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided. Send multipart field 'file'.")

    contents = file.file.read()
    payload, status, source = ocr_service.analyze_document(contents)
    if payload is None:
        raise HTTPException(status_code=502, detail=f"OCR failed ({source}). You can still enter rows manually.")

    report = record_extractor.extract_with_report(payload, _extract_options(None))
    logger.info("Upload %s: %d partner rows (%s)", file.filename, len(report.records), report.strategy or "none")
    if report.records:
        session.load_records(report.records)

    return UploadResponse(
        session_id=session.id,
        filename=file.filename,
        ocr=OCRMeta(ocr_status=status, ocr_source=source, ocr_text=payload.content, table_count=len(payload.tables)),
        extraction=report,
        partners=session.partners,
    )


@app.post("/sessions/{session_id}/calculate", response_model=AllocationOutcome)
def calculate_session(session_id: str, req: SessionCalculateRequest) -> AllocationOutcome:
    session = _session_or_404(session_id)
    outcome = session.calculate(req.total_cash, req.payout_rounding)
    _raise_on_errors(outcome.errors)
    return outcome


@app.post("/sessions/{session_id}/reallocate", response_model=ReallocationOutcome)
def reallocate_session(session_id: str, available: BillBreakdown) -> ReallocationOutcome:
    session = _session_or_404(session_id)
    try:
        return session.reallocate(available)
    except LookupError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/sessions/{session_id}/holiday", response_model=HolidaySplitOutcome)
def holiday_session(session_id: str, req: HolidayRequest) -> HolidaySplitOutcome:
    session = _session_or_404(session_id)
    try:
        outcome = session.holiday_split(
            holiday=req.holiday,
            regular=req.regular,
            source=req.regular_period_source,
            policy=req.payout_rounding,
        )
    except LookupError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    _raise_on_errors(outcome.errors)
    return outcome
