"""
Unit tests for the clock helpers
"""

from datetime import datetime, timedelta, timezone

import pytest

from campus_sessions.core.utils.time_helpers import isoformat_z, to_naive_utc, utcnow

pytestmark = pytest.mark.unit


class TestTimeHelpers:
    """Test naive UTC conversion and wire formatting"""

    def test_utcnow_is_naive(self):
        assert utcnow().tzinfo is None

    def test_aware_value_is_converted_to_utc(self):
        lagos = timezone(timedelta(hours=1))
        value = datetime(2025, 3, 10, 10, 0, tzinfo=lagos)

        assert to_naive_utc(value) == datetime(2025, 3, 10, 9, 0)

    def test_naive_value_passes_through(self):
        value = datetime(2025, 3, 10, 9, 0)
        assert to_naive_utc(value) is value

    def test_isoformat_z_of_aware_value(self):
        lagos = timezone(timedelta(hours=1))
        assert isoformat_z(datetime(2025, 3, 10, 10, 0, tzinfo=lagos)) == "2025-03-10T09:00:00Z"

    def test_isoformat_z_of_naive_value(self):
        assert isoformat_z(datetime(2025, 3, 17, 9, 0)) == "2025-03-17T09:00:00Z"
