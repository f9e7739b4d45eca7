"""
Week boundary for weekly drops.

A week starts on Monday, but the switch happens at 08:00 local time rather
than midnight: someone opening the app at 2 a.m. on Monday still belongs to the
previous week and sees that week's unresolved drop.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from zoneinfo import ZoneInfo

DEFAULT_CUTOVER_HOUR = 8


def compute_week_start(now: datetime, cutover_hour: int = DEFAULT_CUTOVER_HOUR) -> date:
    """
    Monday of the week `now` belongs to.

    `now` is read on its own wall clock; convert it to the user's timezone first.

    Args:
        now: Current local time
        cutover_hour: Hour on Monday at which the new week begins

    Returns:
        The Monday date identifying the week
    """
    monday = now.date() - timedelta(days=now.weekday())
    if now.weekday() == 0 and now.time() < time(hour=cutover_hour):
        monday -= timedelta(days=7)
    return monday


def local_now(tz: Optional[Union[str, ZoneInfo]] = None) -> datetime:
    """Current time in the given timezone (UTC when omitted)."""
    if isinstance(tz, str):
        tz = ZoneInfo(tz)
    return datetime.now(tz or ZoneInfo("UTC"))
