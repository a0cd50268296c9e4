# tests/conftest.py

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import aiosqlite
import pytest

from kubeusage.models.telemetry import Sample, TimeSeriesGroup

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

VALID_LABELS = ["my-project", "europe-west1-b", "prod", "default", "web-0", "nginx"]


def make_samples(values, start=T0, step_seconds=60):
    """Contiguous samples of step_seconds each, starting at start."""
    samples = []
    for i, value in enumerate(values):
        begin = start + timedelta(seconds=i * step_seconds)
        samples.append(Sample(start_time=begin, end_time=begin + timedelta(seconds=step_seconds), value=value))
    return samples


def make_group(values, labels=None):
    return TimeSeriesGroup(label_values=list(labels or VALID_LABELS), samples=make_samples(values))


@pytest.fixture(autouse=True)
def mock_settings_env_vars(monkeypatch):
    """
    Pytest fixture to mock environment variables for the config module.

    Runs for every test so the configuration is predictable and isolated from
    the actual environment.
    """
    monkeypatch.setenv("PROJECT_ID", "my-project")
    monkeypatch.setenv("DB_TYPE", "sqlite")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("NODE_CACHE_DB_PATH", ":memory:")
    monkeypatch.setenv("GOOGLE_OAUTH_TOKEN", "test-token")


@pytest.fixture
async def db_connection():
    """Creates an in-memory SQLite database connection for testing."""
    async with aiosqlite.connect(":memory:") as conn:
        yield conn


@pytest.fixture
async def mock_db_manager(db_connection):
    db_manager = MagicMock()

    @asynccontextmanager
    async def scope():
        yield db_connection

    db_manager.connection_scope = scope
    return db_manager


@pytest.fixture
def group_factory():
    """Returns make_group, building a TimeSeriesGroup of one-minute samples."""
    return make_group


@pytest.fixture
def sample_factory():
    """Returns make_samples, building contiguous samples."""
    return make_samples
