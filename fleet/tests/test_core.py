# fleet/tests/test_core.py

import pytest
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fleet.core.clock import Clock, FixedClock, SystemClock
from fleet.core.db import engine_options


class TestClock:
    """Test the clock capability"""

    def test_clock_is_abstract(self):
        with pytest.raises(TypeError):
            Clock()

    def test_fixed_clock_uses_business_timezone(self):
        clock = FixedClock(datetime(2024, 3, 31, 0, 30))

        assert clock.now().tzinfo == ZoneInfo("Europe/London")
        assert clock.today() == date(2024, 3, 31)

    def test_fixed_clock_can_be_moved(self):
        clock = FixedClock(datetime(2024, 1, 1, 9, 0))
        clock.set(datetime(2024, 2, 1, 9, 0))

        assert clock.today() == date(2024, 2, 1)

    def test_system_clock_is_zoned(self):
        assert SystemClock("Europe/London").now().tzinfo == ZoneInfo("Europe/London")


class TestEngineOptions:
    """Test the database engine settings"""

    def test_server_database_reads_committed_rows(self):
        options = engine_options("mysql+pymysql://fleet:secret@db:3306/fleet")

        assert options["isolation_level"] == "READ COMMITTED"
        assert options["pool_pre_ping"] is True

    def test_sqlite_keeps_default_isolation(self):
        assert "isolation_level" not in engine_options("sqlite://")
