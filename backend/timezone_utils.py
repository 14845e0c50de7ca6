"""
Timezone utilities for hotel-local date handling.

Timestamps are stored in UTC; "today" for dashboards and reports must be the
hotel's local day, otherwise a check-in made just after local midnight is
counted on the previous day.
"""
from datetime import datetime, date, timedelta
import pytz

from config import settings


def get_hotel_timezone(hotel_timezone: str = None) -> pytz.BaseTzInfo:
    """
    Get pytz timezone object for the hotel.

    Falls back to UTC for unknown zone names.
    """
    try:
        return pytz.timezone(hotel_timezone or settings.HOTEL_TIMEZONE)
    except pytz.exceptions.UnknownTimeZoneError:
        return pytz.UTC


def get_hotel_today(hotel_timezone: str = None) -> date:
    """Current date in the hotel's timezone"""
    tz = get_hotel_timezone(hotel_timezone)
    utc_now = datetime.utcnow().replace(tzinfo=pytz.UTC)
    return utc_now.astimezone(tz).date()


def get_hotel_date_range(days: int, hotel_timezone: str = None) -> tuple[datetime, datetime]:
    """
    Get date range in the hotel's timezone.

    Returns naive UTC datetimes bounding the last `days` local days
    (days=1 is today), ready for comparison with stored UTC timestamps.
    """
    tz = get_hotel_timezone(hotel_timezone)

    utc_now = datetime.utcnow().replace(tzinfo=pytz.UTC)
    local_now = utc_now.astimezone(tz)

    local_today_start = tz.localize(datetime.combine(local_now.date(), datetime.min.time()))
    local_start = local_today_start - timedelta(days=days - 1)
    local_end = local_today_start + timedelta(days=1) - timedelta(microseconds=1)

    start_utc = local_start.astimezone(pytz.UTC).replace(tzinfo=None)
    end_utc = local_end.astimezone(pytz.UTC).replace(tzinfo=None)

    return start_utc, end_utc
