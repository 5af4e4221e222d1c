"""Pytest configuration and fixtures for the test suite."""

import pytest

from tipsplit.services import session_service


WORKED_EXAMPLE_PARTNERS = [
    {"name": "Ailuogwemhe, Jodie O", "number": "US37008498", "hours": 9.22},
    {"name": "Smith, John", "number": "US12345678", "hours": 18.48},
]


@pytest.fixture(autouse=True)
def clean_sessions():
    """Every test starts and ends with an empty session store."""
    session_service.purge_all_sessions()
    yield
    session_service.purge_all_sessions()


@pytest.fixture
def engine_env(monkeypatch):
    """Clear engine env vars so defaults apply."""
    for name in ("PAYOUT_ROUNDING", "REGULAR_PERIOD_SOURCE", "EXTRACT_DEDUPE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def worked_example_partners():
    return [dict(p) for p in WORKED_EXAMPLE_PARTNERS]
