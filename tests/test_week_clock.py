from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from matchmaking.weekly.clock import compute_week_start, local_now


@pytest.mark.parametrize(
    "now, expected",
    [
        (datetime(2025, 3, 10, 7, 59), date(2025, 3, 3)),
        (datetime(2025, 3, 10, 8, 0), date(2025, 3, 10)),
        (datetime(2025, 3, 10, 0, 0), date(2025, 3, 3)),
        (datetime(2025, 3, 12, 2, 0), date(2025, 3, 10)),
        (datetime(2025, 3, 16, 23, 59), date(2025, 3, 10)),
        (datetime(2025, 3, 17, 8, 30), date(2025, 3, 17)),
    ],
)
def test_week_start_with_monday_cutover(now, expected):
    assert compute_week_start(now) == expected


def test_week_start_across_year_boundary():
    # Monday 2024-12-30 is the start of ISO week 1 of 2025
    assert compute_week_start(datetime(2025, 1, 1, 12, 0)) == date(2024, 12, 30)
    assert compute_week_start(datetime(2024, 12, 30, 7, 0)) == date(2024, 12, 23)


def test_week_start_uses_local_wall_clock():
    # 07:30 UTC on Monday is 08:30 in Berlin (CET, UTC+1)
    utc_now = datetime(2025, 3, 10, 7, 30, tzinfo=ZoneInfo("UTC"))
    assert compute_week_start(utc_now) == date(2025, 3, 3)
    assert compute_week_start(utc_now.astimezone(ZoneInfo("Europe/Berlin"))) == date(2025, 3, 10)


def test_custom_cutover_hour():
    assert compute_week_start(datetime(2025, 3, 10, 5, 0), cutover_hour=0) == date(2025, 3, 10)


def test_local_now_is_timezone_aware():
    assert local_now("Asia/Kolkata").tzinfo is not None
    assert local_now().utcoffset().total_seconds() == 0
