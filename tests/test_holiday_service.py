"""Tests for the two-period (holiday) split."""

from tipsplit.schemas import PartnerRecord, PeriodInput
from tipsplit.services.holiday_service import calculate_holiday_split, merge_periods
from tipsplit.services.tip_allocator import INVALID_TOTAL_CASH, INVALID_TOTAL_HOURS


def _period(rows, total_cash=None, hourly_rate=None):
    return PeriodInput(
        partners=[PartnerRecord(name=n, number=num, hours=h) for n, num, h in rows],
        total_cash=total_cash,
        hourly_rate=hourly_rate,
    )


REGULAR = _period([("Bravo, Bob", "US2", 6.0), ("Alpha, Ann", "", 4.0)], total_cash=26.00)
HOLIDAY = _period([("ALPHA, ANN", "US1", 2.0), ("Charlie, Cat", "US3", 2.0)], total_cash=20.80)


class TestMerge:
    def test_joins_by_letters_only_name(self):
        merged = merge_periods(REGULAR.partners, HOLIDAY.partners)
        assert [m.name for m in merged] == ["Bravo, Bob", "Alpha, Ann", "Charlie, Cat"]
        ann = merged[1]
        assert float(ann.regular_hours) == 4.0
        assert float(ann.holiday_hours) == 2.0
        assert ann.number == "US1"

    def test_duplicate_rows_within_a_period_add_up(self):
        rows = [PartnerRecord(name="Doe, Jane", hours=3), PartnerRecord(name="Doe Jane", hours=2.5)]
        merged = merge_periods(rows, [])
        assert len(merged) == 1
        assert float(merged[0].regular_hours) == 5.5

    def test_nameless_rows_are_skipped(self):
        assert merge_periods([PartnerRecord(name="", hours=3)], []) == []


class TestHolidaySplit:
    def test_round_once_on_the_combined_tip(self):
        outcome = calculate_holiday_split(REGULAR, HOLIDAY, "nearest")
        assert outcome.errors == []
        ann = outcome.results[0]
        assert ann.name == "Alpha, Ann"
        assert ann.regular_tip == 10.40
        assert ann.holiday_tip == 10.40
        assert ann.combined_decimal == 20.80
        # per-period rounding would have paid 10 + 10
        assert ann.whole_dollar_payout == 21

    def test_results_sorted_by_name(self):
        outcome = calculate_holiday_split(REGULAR, HOLIDAY)
        assert [r.name for r in outcome.results] == ["Alpha, Ann", "Bravo, Bob", "Charlie, Cat"]
        assert [r.whole_dollar_payout for r in outcome.results] == [21, 16, 10]

    def test_period_summaries_and_totals(self):
        outcome = calculate_holiday_split(REGULAR, HOLIDAY)
        assert outcome.regular.hourly_rate == 2.60
        assert outcome.holiday.hourly_rate == 5.20
        assert outcome.regular.total_hours == 10.0
        assert outcome.holiday.total_hours == 4.0
        assert outcome.total_payout == 47
        assert outcome.total_bills.value == 47

    def test_round_up_policy(self):
        outcome = calculate_holiday_split(REGULAR, HOLIDAY, "up")
        assert [r.whole_dollar_payout for r in outcome.results] == [21, 16, 11]

    def test_supplied_rate_is_truncated(self):
        regular = _period([("Doe, Jane", "", 10.0)], hourly_rate=1.449)
        holiday = _period([], total_cash=None)
        outcome = calculate_holiday_split(regular, holiday)
        assert outcome.errors == []
        assert outcome.regular.hourly_rate == 1.44
        assert outcome.results[0].regular_tip == 14.40
        assert outcome.results[0].whole_dollar_payout == 14

    def test_no_hours_anywhere(self):
        outcome = calculate_holiday_split(_period([], 100), _period([("Doe, Jane", "", 0)], 50))
        assert outcome.errors == [INVALID_TOTAL_HOURS]
        assert outcome.results == []

    def test_hours_without_cash(self):
        outcome = calculate_holiday_split(REGULAR, _period([("Doe, Jane", "", 5.0)]))
        assert outcome.errors == [INVALID_TOTAL_CASH]
        assert outcome.results == []

    def test_non_latin_names_join_across_periods(self):
        merged = merge_periods(
            [PartnerRecord(name="Nguyễn, Thị", hours=3)],
            [PartnerRecord(name="NGUYỄN THỊ", number="US9", hours=2)],
        )
        assert len(merged) == 1
        assert merged[0].name == "Nguyễn, Thị"
        assert float(merged[0].holiday_hours) == 2.0
