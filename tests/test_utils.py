from __future__ import annotations

from datetime import datetime, timedelta, timezone

from atsumeru.utils import clean_text, isoformat, to_naive_utc, utcnow


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_to_naive_utc_converts_aware_values():
    aware = datetime(2030, 3, 1, 9, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert to_naive_utc(aware) == datetime(2030, 3, 1, 14, 30)
    naive = datetime(2030, 3, 1, 9, 30)
    assert to_naive_utc(naive) is naive
    assert to_naive_utc(None) is None


def test_clean_text_blanks_to_none():
    assert clean_text("  hello ") == "hello"
    assert clean_text("   ") is None
    assert clean_text(None) is None
    assert clean_text(5) is None


def test_isoformat_handles_none():
    assert isoformat(None) is None
    assert isoformat(datetime(2030, 1, 2, 3, 4, 5)) == "2030-01-02T03:04:05"
