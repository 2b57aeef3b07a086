"""Date parsing and calendar arithmetic helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Timestamp string stored in *_at columns."""
    return utc_now().isoformat()


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Parse a deadline value into a date.

    Accepts ``YYYY-MM-DD``, full ISO timestamps (the date part is kept) and
    date/datetime objects. Anything unparseable yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        return None


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def add_months(start: date, months: int) -> date:
    """
    Add calendar months with overflow semantics.

    The day-of-month is kept and any excess rolls into the following month, so
    Jan 31 + 1 month is Mar 3 (Mar 2 in a leap year). No end-of-month clamping.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1) + timedelta(days=start.day - 1)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored *_at timestamp into an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
