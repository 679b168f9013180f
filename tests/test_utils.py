"""Tests for duration parsing and formatting."""

import pytest

from admission.app.core.utils import format_duration, parse_duration


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (250, 250),
            ("250", 250),
            ("500 ms", 500),
            ("1 second", 1000),
            ("2 seconds", 2000),
            ("1s", 1000),
            ("1 minute", 60000),
            ("5m", 300000),
            ("1h", 3600000),
            ("1.5 hours", 5400000),
            ("1 day", 86400000),
            ("1 week", 604800000),
        ],
    )
    def test_parses_numbers_and_strings(self, raw, expected):
        assert parse_duration(raw) == expected

    def test_unit_is_case_insensitive(self):
        assert parse_duration("1 Minute") == 60000

    @pytest.mark.parametrize("raw", ["", "soon", "1 fortnight", None, True])
    def test_rejects_invalid_values(self, raw):
        with pytest.raises(ValueError):
            parse_duration(raw)


class TestFormatDuration:
    """Tests for format_duration."""

    @pytest.mark.parametrize(
        ("ms", "expected"),
        [
            (0, "0 ms"),
            (450, "450 ms"),
            (1000, "1 second"),
            (1400, "1 second"),
            (1500, "2 seconds"),
            (59000, "59 seconds"),
            (60000, "1 minute"),
            (90000, "2 minutes"),
            (3600000, "1 hour"),
            (172800000, "2 days"),
        ],
    )
    def test_long_format(self, ms, expected):
        assert format_duration(ms) == expected
