"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from cadence.brands.models import Brand, BrandVideoConfig
from cadence.brands.store import FileBrandStore
from cadence.config import Settings
from cadence.jobs.store import FileJobStore
from cadence.jobs.tracker import JobTracker
from cadence.usage.ledger import UsageLedger
from cadence.video.usage_store import FileVideoUsageStore

START = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; every reading moves time forward by ``step``."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(milliseconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def job_store(tmp_path):
    return FileJobStore(tmp_path)


@pytest.fixture
def tracker(job_store, clock):
    return JobTracker(job_store, lease_seconds=300, clock=clock)


@pytest.fixture
def brand_store(tmp_path):
    return FileBrandStore(tmp_path)


@pytest.fixture
def usage_store(tmp_path):
    return FileVideoUsageStore(tmp_path)


@pytest.fixture
def ledger():
    return UsageLedger()


@pytest.fixture
def video_brand(brand_store):
    """Brand with video enabled: $10/month, 5 videos/day."""
    brand = Brand(
        id="brand-1",
        name="Acme",
        video_config=BrandVideoConfig(enabled=True, monthly_budget_usd=10.0, daily_limit=5),
    )
    return brand_store.save(brand)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        cadence_data_dir=str(tmp_path),
        cadence_database_url=None,
        google_api_key=None,
        anthropic_api_key=None,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        video_poll_interval=0.0,
        job_lease_seconds=300,
    )
