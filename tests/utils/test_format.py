# tests/utils/test_format.py
from datetime import datetime

from rsvplib.utils.format import format_date, format_duration, format_percent


class TestFormat:

    def test_percent(self):
        assert format_percent(1, 3) == "33.3%"
        assert format_percent(5, 0) == "0.0%"
        assert format_percent(12, 10) == "100.0%"

    def test_date(self):
        ms = int(datetime(2024, 3, 9, 12, 0).timestamp() * 1000)
        assert format_date(ms) == "2024-03-09"
        assert format_date(None) == "Never"

    def test_duration(self):
        assert format_duration(75) == "1m 15s"
        assert format_duration(3720) == "1h 2m"
        assert format_duration(-4) == "0m 0s"
