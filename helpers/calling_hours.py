from datetime import datetime, time
from typing import Optional

import pytz

from helpers import config


def _parse_hhmm(s: Optional[str], default: time) -> time:
    try:
        hh, mm = (s or "").split(":")
        return time(int(hh), int(mm))
    except (ValueError, AttributeError):
        return default


def local_now(now: Optional[datetime] = None, tz_name: str = config.CALLING_TIMEZONE) -> datetime:
    """`now` may be naive (taken as UTC) or aware; returns it in the calling time zone."""
    now = now or datetime.now(pytz.utc)
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(pytz.timezone(tz_name))


def within_calling_hours(
    now: Optional[datetime] = None,
    tz_name: str = config.CALLING_TIMEZONE,
    start: str = config.CALLING_HOURS_START,
    end: str = config.CALLING_HOURS_END,
) -> bool:
    start_t = _parse_hhmm(start, time(7, 0))
    end_t = _parse_hhmm(end, time(21, 30))
    now_local = local_now(now, tz_name)
    return start_t <= now_local.time() <= end_t
