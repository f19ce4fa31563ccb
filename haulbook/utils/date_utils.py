from datetime import datetime, date, time, timezone
from flask import current_app, has_app_context
import pytz
from dateutil import parser as date_parser

DEFAULT_TZ = 'UTC'

def get_app_tz():
    """Timezone used for day boundaries, from APP_TIMEZONE"""
    name = DEFAULT_TZ
    if has_app_context():
        name = current_app.config.get('APP_TIMEZONE', DEFAULT_TZ)
    return pytz.timezone(name)

def utc_now():
    """Current instant as a naive UTC datetime (storage format)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def local_now():
    return datetime.now(get_app_tz())

def to_local(dt):
    """Convert a stored naive-UTC (or aware) datetime to the app timezone"""
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(get_app_tz())

def to_storage(dt):
    """Normalise a datetime to naive UTC. Naive input is read as app-local time."""
    if dt.tzinfo is None:
        dt = get_app_tz().localize(dt)
    return dt.astimezone(pytz.utc).replace(tzinfo=None)

def parse_date(value):
    """
    Parse a 'YYYY-MM-DD' string (or pass through a date) into a date.

    Returns None for empty input; raises ValueError when the text is not a date.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()
    except ValueError as e:
        raise ValueError(f"Invalid date format, expected YYYY-MM-DD: {value}") from e

def parse_datetime(value):
    """
    Parse an ISO date or datetime into storage format (naive UTC).

    A bare date is taken as local midnight; a datetime without offset as local time.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_storage(value)
    if isinstance(value, date):
        return to_storage(datetime.combine(value, time.min))
    try:
        parsed = date_parser.isoparse(str(value).strip())
    except ValueError as e:
        raise ValueError(f"Invalid date/time format: {value}") from e
    return to_storage(parsed)

def day_start(day):
    """00:00:00.000 local on the given date, in storage format"""
    return to_storage(datetime.combine(day, time.min))

def day_end(day):
    """23:59:59.999 local on the given date, in storage format"""
    return to_storage(datetime.combine(day, time(23, 59, 59, 999000)))

def day_bounds(start_date=None, end_date=None):
    """Storage-format bounds for an inclusive local date range; either side may be None"""
    start = day_start(start_date) if start_date else None
    end = day_end(end_date) if end_date else None
    return start, end

def local_day_stamp():
    """YYYYMMDD for today in the app timezone"""
    return local_now().strftime('%Y%m%d')
