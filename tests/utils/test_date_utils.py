# tests/utils/test_date_utils.py

from datetime import datetime, timedelta, timezone

import pytest

from kubeusage.utils.date_utils import ensure_utc, parse_duration, parse_iso_date, to_iso_z


def test_parse_iso_date_handles_z_and_nanoseconds():
    parsed = parse_iso_date("2024-05-01T10:00:00.123456789Z")

    assert parsed == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)


def test_parse_iso_date_invalid():
    assert parse_iso_date("yesterday") is None
    assert parse_iso_date("") is None


def test_ensure_utc():
    naive = datetime(2024, 5, 1, 10, 0)
    plus_two = datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive).tzinfo == timezone.utc
    assert ensure_utc(plus_two) == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        ensure_utc("not a date")


def test_to_iso_z():
    assert to_iso_z(datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)) == "2024-05-01T10:00:00Z"


@pytest.mark.parametrize(
    "value,seconds",
    [("1m", 60), ("1h", 3600), ("-75m", -4500), ("30s", 30), ("1d", 86400)],
)
def test_parse_duration(value, seconds):
    assert parse_duration(value) == timedelta(seconds=seconds)


@pytest.mark.parametrize("value", ["", "1", "h", "1.5h", "1w", None])
def test_parse_duration_invalid(value):
    with pytest.raises(ValueError):
        parse_duration(value)
