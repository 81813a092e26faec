from datetime import datetime, timezone
from staffhive_leave.core.clock import FixedClock, SystemClock

def test_system_clock_dates_follow_utc_instant():
    clock = SystemClock()
    before = clock.now()
    today = clock.today()
    after = clock.now()
    assert before.tzinfo is not None
    assert today in (before.date(), after.date())

def test_fixed_clock_advances():
    clock = FixedClock(datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc))
    clock.advance(hours=1)
    assert clock.today().isoformat() == "2024-03-02"
    assert clock.now().hour == 0
