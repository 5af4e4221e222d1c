# tipsplit/services/bill_service.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from tipsplit.schemas import (
    BillBreakdown,
    CalculationResult,
    ReallocatedPayout,
    ReallocationOutcome,
)

logger = logging.getLogger(__name__)

BILL_SHORTFALL = "BILL_SHORTFALL"
BILL_OVERPAYMENT = "BILL_OVERPAYMENT"

# (value, BillBreakdown field), largest first
DENOMINATIONS = [
    (20, "twenties"),
    (10, "tens"),
    (5, "fives"),
    (1, "ones"),
]


# -----------------------------------------------------------------------------
# Decomposition
# -----------------------------------------------------------------------------

def decompose(whole_dollars: int) -> BillBreakdown:
    """
    Greedy $20/$10/$5/$1 split. Canonical for this note set: ones end up in
    0..4, fives and tens in 0..1.
    """
    remaining = max(0, int(whole_dollars))
    counts: Dict[str, int] = {}
    for value, field in DENOMINATIONS:
        counts[field], remaining = divmod(remaining, value)
    return BillBreakdown(**counts)


def sum_breakdowns(breakdowns: Iterable[BillBreakdown]) -> BillBreakdown:
    total = BillBreakdown()
    for b in breakdowns:
        total.twenties += b.twenties
        total.tens += b.tens
        total.fives += b.fives
        total.ones += b.ones
    return total


# -----------------------------------------------------------------------------
# Reallocation against a fixed inventory (the bank only had these notes)
# -----------------------------------------------------------------------------

def _pay_one(owed: int, stock: Dict[str, int]) -> ReallocatedPayout:
    taken = {field: 0 for _, field in DENOMINATIONS}
    remaining = owed

    for value, field in DENOMINATIONS:
        n = min(stock[field], remaining // value)
        if n > 0:
            taken[field] += n
            stock[field] -= n
            remaining -= n * value

    overpayment = 0
    if remaining > 0:
        # Exact fits are exhausted. One larger note beats leaving the partner short.
        for value, field in reversed(DENOMINATIONS):
            if value >= remaining and stock[field] > 0:
                taken[field] += 1
                stock[field] -= 1
                overpayment = value - remaining
                remaining = 0
                break

    bills = BillBreakdown(**taken)
    return ReallocatedPayout(
        whole_dollar_payout=owed,
        bills=bills,
        paid=bills.value,
        overpayment=overpayment,
        shortfall=remaining,
    )


def reallocate(
    results: Sequence[CalculationResult],
    available: BillBreakdown,
) -> ReallocationOutcome:
    """
    Hand out a fixed note inventory, largest payouts first.

    Never spends a note that is not in `available`. Partners that cannot be
    covered carry a `shortfall`; a partner covered by one larger note carries an
    `overpayment`. Rows come back in the input order.
    """
    stock = {field: max(0, int(getattr(available, field))) for _, field in DENOMINATIONS}
    clean_available = BillBreakdown(**stock)

    # stable: equal payouts keep their input order
    order = sorted(range(len(results)), key=lambda i: -int(results[i].whole_dollar_payout))

    paid_rows: List[Optional[ReallocatedPayout]] = [None] * len(results)
    for idx in order:
        r = results[idx]
        row = _pay_one(max(0, int(r.whole_dollar_payout)), stock)
        row.name = r.name
        row.number = r.number
        paid_rows[idx] = row

    rows = [row for row in paid_rows if row is not None]
    outcome = ReallocationOutcome(
        results=rows,
        available=clean_available,
        remaining=BillBreakdown(**stock),
        total_owed=sum(r.whole_dollar_payout for r in rows),
        total_paid=sum(r.paid for r in rows),
        total_shortfall=sum(r.shortfall for r in rows),
        total_overpayment=sum(r.overpayment for r in rows),
    )

    if outcome.total_shortfall > 0:
        outcome.flags.append(BILL_SHORTFALL)
        logger.warning(
            "Bill inventory short by $%d across %d partner(s)",
            outcome.total_shortfall,
            sum(1 for r in rows if r.shortfall > 0),
        )
    if outcome.total_overpayment > 0:
        outcome.flags.append(BILL_OVERPAYMENT)

    return outcome
