"""
Pytest configuration
"""
from datetime import datetime, timedelta, timezone

import pytest

from battry.config import get_settings
from battry.models import Reading

T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


def make_reading(
    seconds: float,
    percentage: int,
    voltage: float = 11.4,
    current: float = -1500.0,
    **kwargs
) -> Reading:
    """Reading at T0 + seconds"""
    kwargs.setdefault("design_capacity", 5000)
    kwargs.setdefault("max_capacity", 4500)
    return Reading(
        timestamp=T0 + timedelta(seconds=seconds),
        percentage=percentage,
        voltage=voltage,
        current=current,
        **kwargs
    )


@pytest.fixture
def reading():
    """Factory for readings relative to a fixed start time"""
    return make_reading


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture(autouse=True)
def env_setup(monkeypatch, tmp_path):
    """Set up test environment variables"""
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("REPORT_DIR", str(tmp_path / "reports"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
