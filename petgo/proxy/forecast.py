"""
Beach forecast helpers (KMA ``BeachInfoservice``).

The village forecast is published eight times a day; requests must name the
latest issued run by its KST date and hour.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

KST = timezone(timedelta(hours=9))

# Forecast issue hours (KST)
BASE_HOURS = (2, 5, 8, 11, 14, 17, 20, 23)

BEACH_NUMBERS: Dict[str, int] = {
    "송도": 268,
    "해운대": 304,
    "송정": 305,
    "광안리": 306,
    "다대포": 308,
    "일광": 309,
}


def kst_now(now: Optional[datetime] = None) -> datetime:
    """Current time in KST; an aware ``now`` is converted, a naive one is taken as UTC."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(KST)


def base_date(now: Optional[datetime] = None) -> str:
    return kst_now(now).strftime("%Y%m%d")


def latest_base_time(now: Optional[datetime] = None) -> str:
    """
    Latest issue hour not after the current KST hour, as ``HH00``.

    Before the first run of the day this is ``0200`` on the same date.
    """
    hour = kst_now(now).hour
    latest = BASE_HOURS[0]
    for candidate in BASE_HOURS:
        if candidate <= hour:
            latest = candidate
    return f"{latest:02d}00"


def forecast_base(now: Optional[datetime] = None) -> Tuple[str, str]:
    """``(base_date, base_time)`` computed from a single clock reading."""
    current = kst_now(now)
    return base_date(current), latest_base_time(current)
