# tipsplit/services/holiday_service.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from tipsplit.patterns.names import clean_partner_name, name_key
from tipsplit.schemas import (
    HolidaySplitOutcome,
    HolidaySplitResult,
    PartnerRecord,
    PayoutRoundingPolicy,
    PeriodInput,
    PeriodSummary,
)
from tipsplit.services.bill_service import decompose, sum_breakdowns
from tipsplit.services.tip_allocator import (
    INVALID_TOTAL_CASH,
    INVALID_TOTAL_HOURS,
    hourly_rate_for,
    tip_for,
    to_decimal,
    truncate_cents,
    whole_dollars,
)

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Two-period ("holiday split") distribution
# ------------------------------------------------------------------------------
# - Partners from both reports are joined by name_key() (letters only)
# - Each period has its own truncated hourly rate
# - Per partner: each period tip is rounded to cents, the two are SUMMED, and
#   whole-dollar rounding happens once on the sum (never per period)
# ------------------------------------------------------------------------------


class _Merged:
    __slots__ = ("name", "number", "regular_hours", "holiday_hours")

    def __init__(self, name: str, number: str) -> None:
        self.name = name
        self.number = number
        self.regular_hours = Decimal("0")
        self.holiday_hours = Decimal("0")


def merge_periods(
    regular: Iterable[PartnerRecord],
    holiday: Iterable[PartnerRecord],
) -> List[_Merged]:
    """
    Join two partner lists by normalized name. Hours add up within a period
    (the same partner listed twice), the first non-empty partner number wins.
    Order: first appearance, regular report first.
    """
    merged: Dict[str, _Merged] = {}

    def _add(p: PartnerRecord, period: str) -> None:
        name = clean_partner_name(p.name) or (p.name or "").strip()
        key = name_key(name)
        if not key:
            return
        entry = merged.get(key)
        if entry is None:
            entry = merged[key] = _Merged(name, p.number or "")
        if p.number and not entry.number:
            entry.number = p.number
        hours = to_decimal(p.hours)
        if period == "regular":
            entry.regular_hours += hours
        else:
            entry.holiday_hours += hours

    for p in regular:
        _add(p, "regular")
    for p in holiday:
        _add(p, "holiday")
    return list(merged.values())


def _period_rate(period: PeriodInput, total_hours: Decimal) -> Tuple[Decimal, Optional[str]]:
    """(rate, error). A supplied rate wins over cash / hours."""
    if total_hours <= 0:
        return Decimal("0"), None
    if period.hourly_rate is not None:
        return truncate_cents(to_decimal(period.hourly_rate)), None
    cash = to_decimal(period.total_cash)
    if cash <= 0:
        return Decimal("0"), INVALID_TOTAL_CASH
    return hourly_rate_for(cash, total_hours), None


def calculate_holiday_split(
    regular: PeriodInput,
    holiday: PeriodInput,
    policy: Optional[PayoutRoundingPolicy] = None,
) -> HolidaySplitOutcome:
    policy = policy or "nearest"
    merged = merge_periods(regular.partners, holiday.partners)

    regular_hours = sum((m.regular_hours for m in merged), Decimal("0"))
    holiday_hours = sum((m.holiday_hours for m in merged), Decimal("0"))

    outcome = HolidaySplitOutcome(payout_rounding=policy)
    if regular_hours <= 0 and holiday_hours <= 0:
        outcome.errors.append(INVALID_TOTAL_HOURS)
        return outcome

    regular_rate, reg_err = _period_rate(regular, regular_hours)
    holiday_rate, hol_err = _period_rate(holiday, holiday_hours)
    if reg_err or hol_err:
        outcome.errors.append(INVALID_TOTAL_CASH)
        return outcome

    logger.info("Holiday split: regular $%s/hr, holiday $%s/hr, %d partners", regular_rate, holiday_rate, len(merged))

    results: List[HolidaySplitResult] = []
    total_regular_tips = Decimal("0")
    total_holiday_tips = Decimal("0")
    total_payout = 0

    for m in merged:
        regular_tip = tip_for(regular_rate, m.regular_hours)
        holiday_tip = tip_for(holiday_rate, m.holiday_hours)
        combined = regular_tip + holiday_tip
        payout = whole_dollars(combined, policy)

        total_regular_tips += regular_tip
        total_holiday_tips += holiday_tip
        total_payout += payout

        results.append(
            HolidaySplitResult(
                name=m.name,
                number=m.number,
                regular_hours=float(m.regular_hours),
                holiday_hours=float(m.holiday_hours),
                regular_tip=float(regular_tip),
                holiday_tip=float(holiday_tip),
                combined_decimal=float(combined),
                whole_dollar_payout=payout,
                bill_breakdown=decompose(payout),
            )
        )

    results.sort(key=lambda r: r.name.lower())

    outcome.regular = PeriodSummary(
        partners=len(regular.partners),
        total_hours=float(regular_hours),
        total_cash=regular.total_cash,
        hourly_rate=float(regular_rate),
        total_tips=float(total_regular_tips),
    )
    outcome.holiday = PeriodSummary(
        partners=len(holiday.partners),
        total_hours=float(holiday_hours),
        total_cash=holiday.total_cash,
        hourly_rate=float(holiday_rate),
        total_tips=float(total_holiday_tips),
    )
    outcome.results = results
    outcome.total_combined_tips = float(total_regular_tips + total_holiday_tips)
    outcome.total_payout = total_payout
    outcome.total_bills = sum_breakdowns(r.bill_breakdown for r in results)
    return outcome
