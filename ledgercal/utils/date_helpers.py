from datetime import date, datetime, timedelta
import calendar
import re
from ledgercal.utils.constants import DATE_FORMAT, MONTH_FORMAT

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def today() -> date:
    return date.today()


def current_month_str() -> str:
    return format_month(today())


def is_iso_date(date_str) -> bool:
    """True only for a real calendar date written as YYYY-MM-DD."""
    return parse_date(date_str) is not None


def parse_date(date_str) -> date | None:
    """Parse a strict YYYY-MM-DD string, returning None on failure."""
    if isinstance(date_str, date):
        return date_str
    if not date_str or not isinstance(date_str, str):
        return None
    date_str = date_str.strip()
    if not _ISO_DATE_RE.match(date_str):
        return None
    try:
        return datetime.strptime(date_str, DATE_FORMAT).date()
    except ValueError:
        return None


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def format_month(d: date) -> str:
    return d.strftime(MONTH_FORMAT)


def parse_month(month_str: str) -> date | None:
    """First day of a YYYY-MM month, or None."""
    m = _MONTH_RE.match((month_str or "").strip())
    if not m or not 1 <= int(m.group(2)) <= 12:
        return None
    return date(int(m.group(1)), int(m.group(2)), 1)


def month_bounds(month_str: str) -> tuple[date, date]:
    """Return (first_day, last_day) for a YYYY-MM month."""
    first = parse_month(month_str)
    if first is None:
        raise ValueError(f"Invalid month: {month_str}")
    _, days = calendar.monthrange(first.year, first.month)
    return first, first.replace(day=days)


def add_months(d: date, n: int) -> date:
    """Shift by n calendar months; a day past the target month's end becomes its last day."""
    year, month0 = divmod(d.year * 12 + d.month - 1 + n, 12)
    _, days = calendar.monthrange(year, month0 + 1)
    return date(year, month0 + 1, min(d.day, days))


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def grid_start(month_str: str) -> date:
    """Sunday on or before the first of the month (first cell of a calendar grid)."""
    first, _ = month_bounds(month_str)
    # date.weekday(): Monday=0 .. Sunday=6
    return first - timedelta(days=(first.weekday() + 1) % 7)


def iter_days(start: date, end: date):
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def last_n_days(n: int, end: date | None = None) -> tuple[date, date]:
    """Inclusive window of n days ending on `end` (default today)."""
    end = end or today()
    return end - timedelta(days=max(n, 1) - 1), end


def friendly_month(month_str: str) -> str:
    """'2026-02' -> 'February 2026'; anything unparseable is returned as is."""
    first = parse_month(month_str)
    return first.strftime("%B %Y") if first else month_str
