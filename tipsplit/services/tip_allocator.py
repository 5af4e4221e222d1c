# tipsplit/services/tip_allocator.py
from __future__ import annotations

import logging
import math
from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Optional

from tipsplit.schemas import (
    AllocationOutcome,
    BillBreakdown,
    CalculationResult,
    PayoutRoundingPolicy,
)
from tipsplit.services.bill_service import decompose, sum_breakdowns

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Tip allocation
# ------------------------------------------------------------------------------
# Order of operations is part of the contract:
#   1. rate_raw     = total_cash / total_hours
#   2. hourly_rate  = rate_raw truncated to cents (never rounded up, so
#                     hourly_rate * total_hours <= total_cash)
#   3. decimal_tip  = hourly_rate * hours, rounded half-up to cents
#   4. payout       = decimal_tip -> whole dollars by the named policy
#   5. tip <= 0     -> payout 0
#
# Money is Decimal built from str(float): 1.005 stays 1.005, so cent
# boundaries are exact without an epsilon.
# ------------------------------------------------------------------------------

INVALID_TOTAL_CASH = "INVALID_TOTAL_CASH"
INVALID_TOTAL_HOURS = "INVALID_TOTAL_HOURS"

CENT = Decimal("0.01")
DOLLAR = Decimal("1")

_POLICY_ROUNDING = {
    "nearest": ROUND_HALF_UP,
    "up": ROUND_CEILING,
}


def to_decimal(value: Any) -> Decimal:
    """Finite, non-negative Decimal; anything else (None, NaN, -3, "abc") is 0."""
    try:
        f = float(value)
    except (TypeError, ValueError):
        return Decimal("0")
    if not math.isfinite(f) or f < 0:
        return Decimal("0")
    return Decimal(str(f))


def truncate_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_DOWN)


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def whole_dollars(decimal_tip: Decimal, policy: PayoutRoundingPolicy = "nearest") -> int:
    """
    Cash actually handed over.

    "nearest": 13.28 -> 13, 13.50 -> 14
    "up":      13.28 -> 14, 87.00 -> 87
    """
    if policy not in _POLICY_ROUNDING:
        raise ValueError(f"Unknown payout rounding policy: {policy!r}")
    if decimal_tip <= 0:
        return 0
    return int(decimal_tip.quantize(DOLLAR, rounding=_POLICY_ROUNDING[policy]))


def hourly_rate_for(total_cash: Decimal, total_hours: Decimal) -> Decimal:
    if total_hours <= 0:
        return Decimal("0")
    return truncate_cents(total_cash / total_hours)


def tip_for(hourly_rate: Decimal, hours: Decimal) -> Decimal:
    return round_cents(hourly_rate * hours)


def _hours_of(partner: Any) -> Any:
    if isinstance(partner, dict):
        return partner.get("hours")
    return getattr(partner, "hours", None)


def _field(partner: Any, name: str) -> str:
    if isinstance(partner, dict):
        v = partner.get(name)
    else:
        v = getattr(partner, name, None)
    return "" if v is None else str(v)


def validate_inputs(total_cash: Any, partners: Iterable[Any]) -> List[str]:
    """Preconditions, checked before any arithmetic runs."""
    errors: List[str] = []
    cash = to_decimal(total_cash)
    if cash <= 0:
        errors.append(INVALID_TOTAL_CASH)
    hours = sum((to_decimal(_hours_of(p)) for p in partners), Decimal("0"))
    if hours <= 0:
        errors.append(INVALID_TOTAL_HOURS)
    return errors


def allocate(
    total_cash: Any,
    partners: Iterable[Any],
    policy: Optional[PayoutRoundingPolicy] = None,
) -> AllocationOutcome:
    """
    Split total_cash across partners by hours.

    partners: anything with an `hours` attribute or key (PartnerRecord,
    PartnerRow, dict). `name`/`number` are carried through when present.

    Violated preconditions come back in `errors` with no results at all; the
    calculation never runs partially.
    """
    policy = policy or "nearest"
    if policy not in _POLICY_ROUNDING:
        raise ValueError(f"Unknown payout rounding policy: {policy!r}")

    partners = list(partners)
    errors = validate_inputs(total_cash, partners)
    if errors:
        return AllocationOutcome(payout_rounding=policy, errors=errors)

    cash = to_decimal(total_cash)
    hours_list = [to_decimal(_hours_of(p)) for p in partners]
    total_hours = sum(hours_list, Decimal("0"))

    rate = hourly_rate_for(cash, total_hours)
    logger.info("Hourly rate $%s (raw %s) over %s hours", rate, cash / total_hours, total_hours)

    results: List[CalculationResult] = []
    sum_tips = Decimal("0")
    sum_payout = 0
    for partner, hours in zip(partners, hours_list):
        decimal_tip = tip_for(rate, hours)
        payout = whole_dollars(decimal_tip, policy)
        sum_tips += decimal_tip
        sum_payout += payout
        results.append(
            CalculationResult(
                name=_field(partner, "name"),
                number=_field(partner, "number"),
                hours=float(hours),
                decimal_tip=float(decimal_tip),
                whole_dollar_payout=payout,
                bill_breakdown=decompose(payout),
            )
        )

    total_bills: BillBreakdown = sum_breakdowns(r.bill_breakdown for r in results)

    return AllocationOutcome(
        hourly_rate=float(rate),
        total_cash=float(cash),
        total_hours=float(total_hours),
        payout_rounding=policy,
        results=results,
        sum_decimal_tips=float(sum_tips),
        sum_payout=sum_payout,
        residual=float(cash - sum_payout),
        total_bills=total_bills,
    )
