"""Tests for the session controller and in-process store."""

import pytest

from tipsplit.schemas import BillBreakdown, EngineConfig, PartnerPatch, PartnerRecord, PeriodInput
from tipsplit.services import session_service
from tipsplit.services.session_service import TipSession


def _loaded_session(config=None):
    session = TipSession(config=config)
    session.load_records([
        PartnerRecord(name="Ailuogwemhe, Jodie O", number="US37008498", hours=9.22),
        PartnerRecord(name="Smith, John", number="US12345678", hours=18.48),
    ])
    return session


class TestRows:
    def test_load_records_assigns_ids(self):
        session = _loaded_session()
        assert [p.id for p in session.partners] == [1, 2]
        assert session.total_hours() == 27.7

    def test_add_blank_and_given_rows(self):
        session = _loaded_session()
        blank = session.add_row()
        given = session.add_row(PartnerRecord(name="Roe, Rick", hours=4))
        assert (blank.id, blank.name, blank.hours) == (3, "", 0.0)
        assert (given.id, given.name, given.hours) == (4, "Roe, Rick", 4.0)

    def test_update_row_only_touches_sent_fields(self):
        session = _loaded_session()
        row = session.update_row(2, PartnerPatch(hours=20))
        assert (row.name, row.number, row.hours) == ("Smith, John", "US12345678", 20.0)

    def test_bad_hours_edit_becomes_zero(self):
        session = _loaded_session()
        assert session.update_row(1, PartnerPatch(hours=-3)).hours == 0.0

    def test_missing_row(self):
        session = _loaded_session()
        with pytest.raises(KeyError):
            session.get_row(99)
        with pytest.raises(KeyError):
            session.remove_row(99)

    def test_remove_and_clear(self):
        session = _loaded_session()
        session.remove_row(1)
        assert [p.name for p in session.partners] == ["Smith, John"]
        session.clear()
        assert session.partners == []
        assert session.total_hours() == 0


class TestCalculations:
    def test_calculate_replaces_snapshot(self):
        session = _loaded_session()
        outcome = session.calculate(40.00)
        assert [r.whole_dollar_payout for r in outcome.results] == [13, 27]
        assert session.last_calculation is outcome

    def test_failed_calculation_keeps_previous_snapshot(self):
        session = _loaded_session()
        first = session.calculate(40.00)
        failed = session.calculate(0)
        assert not failed.ok
        assert session.last_calculation is first

    def test_session_policy_is_the_default(self):
        session = _loaded_session(EngineConfig(payout_rounding="up"))
        assert [r.whole_dollar_payout for r in session.calculate(40.00).results] == [14, 27]

    def test_editing_rows_clears_snapshot_on_reload(self):
        session = _loaded_session()
        session.calculate(40.00)
        session.load_records([PartnerRecord(name="Doe, Jane", hours=1.5)])
        assert session.last_calculation is None

    @pytest.mark.parametrize(
        "edit",
        [
            lambda s: s.add_row(),
            lambda s: s.update_row(2, PartnerPatch(hours=20)),
            lambda s: s.update_row(1, PartnerPatch(name="Ailuogwemhe, Jodie")),
            lambda s: s.remove_row(1),
            lambda s: s.clear(),
        ],
    )
    def test_any_row_edit_drops_snapshot(self, edit):
        session = _loaded_session()
        session.calculate(40.00)
        edit(session)
        assert session.last_calculation is None
        with pytest.raises(LookupError):
            session.reallocate(BillBreakdown(twenties=5))

    def test_external_holiday_after_edit_needs_recalculation(self):
        session = _loaded_session(EngineConfig(regular_period_source="external"))
        session.calculate(40.00)
        session.update_row(2, PartnerPatch(hours=30))
        with pytest.raises(LookupError):
            session.holiday_split(TestHolidaySplit.HOLIDAY)

    def test_reallocate_needs_a_calculation(self):
        session = _loaded_session()
        with pytest.raises(LookupError):
            session.reallocate(BillBreakdown(twenties=5))

    def test_reallocate_uses_last_calculation(self):
        session = _loaded_session()
        session.calculate(40.00)
        outcome = session.reallocate(BillBreakdown(twenties=1, tens=1, fives=1, ones=5))
        assert outcome.total_owed == 40
        assert outcome.total_shortfall == 0


class TestHolidaySplit:
    HOLIDAY = PeriodInput(partners=[PartnerRecord(name="Smith, John", hours=5.0)], total_cash=25.00)

    def test_external_regular_period_uses_session_rate(self):
        session = _loaded_session(EngineConfig(regular_period_source="external"))
        session.calculate(40.00)
        outcome = session.holiday_split(self.HOLIDAY)
        assert outcome.regular.hourly_rate == 1.44
        john = [r for r in outcome.results if r.name == "Smith, John"][0]
        # 26.61 regular + 25.00 holiday
        assert john.combined_decimal == 51.61
        assert john.whole_dollar_payout == 52

    def test_external_without_calculation(self):
        session = _loaded_session()
        with pytest.raises(LookupError):
            session.holiday_split(self.HOLIDAY, source="external")

    def test_uploaded_regular_period_is_required(self):
        session = _loaded_session()
        with pytest.raises(ValueError):
            session.holiday_split(self.HOLIDAY, source="uploaded")

    def test_uploaded_regular_period(self):
        session = _loaded_session()
        regular = PeriodInput(partners=[PartnerRecord(name="Smith, John", hours=10.0)], total_cash=30.00)
        outcome = session.holiday_split(self.HOLIDAY, regular=regular)
        assert [r.whole_dollar_payout for r in outcome.results] == [55]


class TestStore:
    def test_create_load_delete(self):
        session = session_service.create_session()
        assert session_service.load_session(session.id) is session
        assert session_service.list_session_ids() == [session.id]
        assert session_service.delete_session(session.id) is True
        assert session_service.delete_session(session.id) is False
        with pytest.raises(KeyError):
            session_service.load_session(session.id)

    def test_purge(self):
        session_service.create_session()
        session_service.create_session()
        assert session_service.purge_all_sessions() == 2
        assert session_service.list_session_ids() == []

    def test_state_snapshot(self):
        session = session_service.create_session()
        session.load_records([PartnerRecord(name="Doe, Jane", hours=1.5)])
        state = session.state()
        assert state.id == session.id
        assert state.total_hours == 1.5
        assert state.last_calculation is None
