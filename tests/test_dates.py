"""Tests for shipping date parsing."""
from datetime import datetime, timedelta, timezone

import pytest

from app.tools.dates import parse_shipping_date, to_display, to_iso

REF = datetime(2026, 1, 10, 9, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("tra 2 settimane", datetime(2026, 1, 24, 9, 30, tzinfo=timezone.utc)),
        ("fra 5 giorni", datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)),
        ("in 3 days", datetime(2026, 1, 13, 9, 30, tzinfo=timezone.utc)),
        ("in 1 month", datetime(2026, 2, 10, 9, 30, tzinfo=timezone.utc)),
        ("domani", datetime(2026, 1, 11, 9, 30, tzinfo=timezone.utc)),
        ("Tomorrow", datetime(2026, 1, 11, 9, 30, tzinfo=timezone.utc)),
        ("dopodomani", datetime(2026, 1, 12, 9, 30, tzinfo=timezone.utc)),
        ("next week", datetime(2026, 1, 17, 9, 30, tzinfo=timezone.utc)),
        ("prossimo mese", datetime(2026, 2, 10, 9, 30, tzinfo=timezone.utc)),
    ],
)
def test_relative_expressions(text, expected):
    assert parse_shipping_date(text, REF) == expected


def test_iso_date_is_midnight_utc():
    assert parse_shipping_date("2026-02-01", REF) == datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_european_dates_are_day_first():
    assert parse_shipping_date("01/02/2026", REF) == datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert parse_shipping_date("15-03-2026", REF) == datetime(2026, 3, 15, tzinfo=timezone.utc)


def test_full_iso_timestamp_is_converted_to_utc():
    parsed = parse_shipping_date("2026-02-01T15:00:00+01:00", REF)
    assert parsed == datetime(2026, 2, 1, 14, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("text", ["whenever you can", "", "31/02/2026"])
def test_unrecognized_falls_back_to_two_weeks(text):
    assert parse_shipping_date(text, REF) == REF + timedelta(days=14)


def test_naive_reference_is_treated_as_utc():
    parsed = parse_shipping_date("domani", datetime(2026, 1, 10, 9, 30))
    assert parsed.tzinfo is not None
    assert parsed == datetime(2026, 1, 11, 9, 30, tzinfo=timezone.utc)


def test_iso_and_display_formatting():
    value = datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert to_iso(value) == "2026-02-01T00:00:00.000Z"
    assert to_display(value) == "1 February 2026"
