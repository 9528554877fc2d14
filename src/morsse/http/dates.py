"""
HTTP-date formatting (RFC 7231, section 7.1.1.1).

Used by the Date response header and by cookie Expires attributes.
"""

from datetime import datetime, timezone


# Weekday names (0=Monday in Python's datetime)
_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date.

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Thu, 01 Jan 2026 12:00:00 GMT

    HTTP dates are always GMT. Aware datetimes are converted to UTC first;
    naive ones are assumed to already be UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# Thu, 01 Jan 1970 00:00:00 GMT - what an expired cookie carries
EPOCH_HTTP_DATE = format_http_date(EPOCH)
