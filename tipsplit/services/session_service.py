# tipsplit/services/session_service.py
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from tipsplit.schemas import (
    AllocationOutcome,
    BillBreakdown,
    EngineConfig,
    HolidaySplitOutcome,
    PartnerPatch,
    PartnerRecord,
    PartnerRow,
    PayoutRoundingPolicy,
    PeriodInput,
    ReallocationOutcome,
    RegularPeriodSource,
    SessionState,
)
from tipsplit.services import bill_service, holiday_service, tip_allocator


def _safe_hours(value: Optional[float]) -> float:
    # Editable table: anything unusable is 0, no upper bound
    try:
        h = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(h) or h < 0:
        return 0.0
    return h


# -----------------------------------------------------------------------------
# Session (one person working one tip week)
# -----------------------------------------------------------------------------

class TipSession:
    """
    Owns the editable partner table and the last calculation snapshot.

    A calculation replaces the snapshot in full. Any row edit (load, add,
    update, remove, clear) drops it, so reallocation and the external holiday
    split only ever see results computed from the current rows.
    """

    def __init__(self, session_id: Optional[str] = None, config: Optional[EngineConfig] = None) -> None:
        self.id = session_id or str(uuid4())
        self.config = config or EngineConfig()
        self.partners: List[PartnerRow] = []
        self.last_calculation: Optional[AllocationOutcome] = None
        self._next_id = 1

    # ---- rows -------------------------------------------------------------

    def _new_row(self, name: str = "", number: str = "", hours: Optional[float] = 0.0) -> PartnerRow:
        row = PartnerRow(id=self._next_id, name=name or "", number=number or "", hours=_safe_hours(hours))
        self._next_id += 1
        return row

    def load_records(self, records: Iterable[PartnerRecord]) -> List[PartnerRow]:
        """Replace the table with freshly extracted rows."""
        self.partners = [self._new_row(r.name, r.number, r.hours) for r in records]
        self.last_calculation = None
        return self.partners

    def add_row(self, record: Optional[PartnerRecord] = None) -> PartnerRow:
        row = self._new_row() if record is None else self._new_row(record.name, record.number, record.hours)
        self.partners.append(row)
        self.last_calculation = None
        return row

    def get_row(self, row_id: int) -> PartnerRow:
        for row in self.partners:
            if row.id == row_id:
                return row
        raise KeyError(f"Partner row not found: {row_id}")

    def update_row(self, row_id: int, patch: PartnerPatch) -> PartnerRow:
        row = self.get_row(row_id)
        if patch.name is not None:
            row.name = patch.name
        if patch.number is not None:
            row.number = patch.number
        if patch.hours is not None:
            row.hours = _safe_hours(patch.hours)
        self.last_calculation = None
        return row

    def remove_row(self, row_id: int) -> None:
        row = self.get_row(row_id)
        self.partners = [p for p in self.partners if p.id != row.id]
        self.last_calculation = None

    def clear(self) -> None:
        self.partners = []
        self.last_calculation = None

    def total_hours(self) -> float:
        return round(sum(_safe_hours(p.hours) for p in self.partners), 2)

    # ---- calculations -----------------------------------------------------

    def calculate(self, total_cash: float, policy: Optional[PayoutRoundingPolicy] = None) -> AllocationOutcome:
        outcome = tip_allocator.allocate(total_cash, self.partners, policy or self.config.payout_rounding)
        # failed validation leaves the previous snapshot alone
        if outcome.ok:
            self.last_calculation = outcome
        return outcome

    def reallocate(self, available: BillBreakdown) -> ReallocationOutcome:
        if self.last_calculation is None:
            raise LookupError("No calculation to reallocate; run calculate() first")
        return bill_service.reallocate(self.last_calculation.results, available)

    def holiday_split(
        self,
        holiday: PeriodInput,
        regular: Optional[PeriodInput] = None,
        source: Optional[RegularPeriodSource] = None,
        policy: Optional[PayoutRoundingPolicy] = None,
    ) -> HolidaySplitOutcome:
        """
        Two-period split.

        source="external": the regular period is this session's table and the
        rate of its last calculation.
        source="uploaded": the regular period is supplied like the holiday one.
        """
        source = source or self.config.regular_period_source
        if source == "external":
            if self.last_calculation is None:
                raise LookupError("No regular-period calculation in this session")
            regular = PeriodInput(
                partners=[PartnerRecord(name=p.name, number=p.number, hours=p.hours) for p in self.partners if p.name],
                total_cash=self.last_calculation.total_cash,
                hourly_rate=self.last_calculation.hourly_rate,
            )
        elif regular is None:
            raise ValueError("An uploaded regular period is required")
        return holiday_service.calculate_holiday_split(regular, holiday, policy or self.config.payout_rounding)

    def state(self) -> SessionState:
        return SessionState(
            id=self.id,
            partners=list(self.partners),
            total_hours=self.total_hours(),
            last_calculation=self.last_calculation,
        )


# -----------------------------------------------------------------------------
# In-process store (no persistence beyond this process)
# -----------------------------------------------------------------------------

_SESSIONS: Dict[str, TipSession] = {}


def create_session(config: Optional[EngineConfig] = None) -> TipSession:
    session = TipSession(config=config)
    _SESSIONS[session.id] = session
    return session


def load_session(session_id: str) -> TipSession:
    """
    Raises KeyError if missing.
    """
    session = _SESSIONS.get(str(session_id))
    if session is None:
        raise KeyError(f"Session not found: {session_id}")
    return session


def list_session_ids() -> List[str]:
    return list(_SESSIONS.keys())


def delete_session(session_id: str) -> bool:
    """
    Returns True if deleted.
    """
    return _SESSIONS.pop(str(session_id), None) is not None


def purge_all_sessions() -> int:
    """
    Drops every session. Returns count deleted.
    Useful for local testing only.
    """
    count = len(_SESSIONS)
    _SESSIONS.clear()
    return count
