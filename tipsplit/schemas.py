# tipsplit/schemas.py
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


PayoutRoundingPolicy = Literal["nearest", "up"]
RegularPeriodSource = Literal["external", "uploaded"]
DedupeMode = Literal["name", "record"]


# -----------------------------------------------------------------------------
# Engine configuration (one engine, explicit knobs)
# -----------------------------------------------------------------------------

class EngineConfig(BaseModel):
    payout_rounding: PayoutRoundingPolicy = "nearest"
    regular_period_source: RegularPeriodSource = "uploaded"
    dedupe: DedupeMode = "name"


# -----------------------------------------------------------------------------
# OCR payload (what the document-analysis service hands back)
# Cells use the service's camelCase keys; snake_case works too.
# -----------------------------------------------------------------------------

class TableCell(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    row_index: int = Field(0, alias="rowIndex")
    column_index: int = Field(0, alias="columnIndex")
    content: str = ""


class CellTable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    row_count: int = Field(0, alias="rowCount")
    column_count: int = Field(0, alias="columnCount")
    cells: List[TableCell] = Field(default_factory=list)


class OcrPayload(BaseModel):
    content: str = ""
    tables: List[CellTable] = Field(default_factory=list)


class OCRMeta(BaseModel):
    ocr_status: str = "unknown"   # "success", "failed"
    ocr_source: str = "unknown"   # "azure:prebuilt-layout", "timeout", etc
    ocr_text: str = ""
    table_count: int = 0


# -----------------------------------------------------------------------------
# Partner records
# -----------------------------------------------------------------------------

class PartnerRecord(BaseModel):
    name: str
    number: str = ""
    hours: float = 0.0


class PartnerRow(PartnerRecord):
    """A record owned by a session (editable table row)."""
    id: int
    name: str = ""


class PartnerPatch(BaseModel):
    """
    Only send what you want to change.
    """
    name: Optional[str] = None
    number: Optional[str] = None
    hours: Optional[float] = None


class ExtractOptions(BaseModel):
    dedupe: DedupeMode = "name"
    max_name_tokens: int = 6


class ExtractionReport(BaseModel):
    records: List[PartnerRecord] = Field(default_factory=list)
    strategy: Optional[str] = None
    flags: List[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Calculation
# -----------------------------------------------------------------------------

class BillBreakdown(BaseModel):
    twenties: int = 0
    tens: int = 0
    fives: int = 0
    ones: int = 0

    @property
    def value(self) -> int:
        return 20 * self.twenties + 10 * self.tens + 5 * self.fives + self.ones

    @property
    def note_count(self) -> int:
        return self.twenties + self.tens + self.fives + self.ones


class CalculationResult(BaseModel):
    name: str = ""
    number: str = ""
    hours: float = 0.0
    decimal_tip: float = 0.0
    whole_dollar_payout: int = 0
    bill_breakdown: BillBreakdown = Field(default_factory=BillBreakdown)


class AllocationOutcome(BaseModel):
    hourly_rate: float = 0.0
    total_cash: float = 0.0
    total_hours: float = 0.0
    payout_rounding: PayoutRoundingPolicy = "nearest"
    results: List[CalculationResult] = Field(default_factory=list)

    sum_decimal_tips: float = 0.0
    sum_payout: int = 0
    # total_cash - sum_payout; rounding drift, positive means cash left over
    residual: float = 0.0
    total_bills: BillBreakdown = Field(default_factory=BillBreakdown)

    errors: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# -----------------------------------------------------------------------------
# Reallocation against a fixed bill inventory
# -----------------------------------------------------------------------------

class ReallocatedPayout(BaseModel):
    name: str = ""
    number: str = ""
    whole_dollar_payout: int = 0
    bills: BillBreakdown = Field(default_factory=BillBreakdown)
    paid: int = 0
    overpayment: int = 0
    shortfall: int = 0


class ReallocationOutcome(BaseModel):
    results: List[ReallocatedPayout] = Field(default_factory=list)
    available: BillBreakdown = Field(default_factory=BillBreakdown)
    remaining: BillBreakdown = Field(default_factory=BillBreakdown)
    total_owed: int = 0
    total_paid: int = 0
    total_shortfall: int = 0
    total_overpayment: int = 0
    flags: List[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Two-period (holiday split)
# -----------------------------------------------------------------------------

class PeriodInput(BaseModel):
    partners: List[PartnerRecord] = Field(default_factory=list)
    total_cash: Optional[float] = None
    # Set when the period's rate comes from elsewhere (host session calculation)
    hourly_rate: Optional[float] = None


class PeriodSummary(BaseModel):
    partners: int = 0
    total_hours: float = 0.0
    total_cash: Optional[float] = None
    hourly_rate: float = 0.0
    total_tips: float = 0.0


class HolidaySplitResult(BaseModel):
    name: str = ""
    number: str = ""
    regular_hours: float = 0.0
    holiday_hours: float = 0.0
    regular_tip: float = 0.0
    holiday_tip: float = 0.0
    combined_decimal: float = 0.0
    whole_dollar_payout: int = 0
    bill_breakdown: BillBreakdown = Field(default_factory=BillBreakdown)


class HolidaySplitOutcome(BaseModel):
    regular: PeriodSummary = Field(default_factory=PeriodSummary)
    holiday: PeriodSummary = Field(default_factory=PeriodSummary)
    payout_rounding: PayoutRoundingPolicy = "nearest"
    results: List[HolidaySplitResult] = Field(default_factory=list)
    total_combined_tips: float = 0.0
    total_payout: int = 0
    total_bills: BillBreakdown = Field(default_factory=BillBreakdown)
    errors: List[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Requests / responses (HTTP surface)
# -----------------------------------------------------------------------------

class ExtractRequest(BaseModel):
    text: Optional[str] = None
    tables: List[CellTable] = Field(default_factory=list)
    dedupe: Optional[DedupeMode] = None


class CalculateRequest(BaseModel):
    total_cash: float
    partners: List[PartnerRecord] = Field(default_factory=list)
    payout_rounding: Optional[PayoutRoundingPolicy] = None


class SessionCalculateRequest(BaseModel):
    total_cash: float
    payout_rounding: Optional[PayoutRoundingPolicy] = None


class HolidayRequest(BaseModel):
    holiday: PeriodInput
    # Required when the regular period is uploaded rather than taken from the session
    regular: Optional[PeriodInput] = None
    regular_period_source: Optional[RegularPeriodSource] = None
    payout_rounding: Optional[PayoutRoundingPolicy] = None


class SessionState(BaseModel):
    id: str
    partners: List[PartnerRow] = Field(default_factory=list)
    total_hours: float = 0.0
    last_calculation: Optional[AllocationOutcome] = None


class UploadResponse(BaseModel):
    session_id: str
    filename: str
    ocr: OCRMeta
    extraction: ExtractionReport
    partners: List[PartnerRow] = Field(default_factory=list)
