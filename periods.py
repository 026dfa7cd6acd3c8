import re
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from config import get_settings

_MONTH_CODE_RE = re.compile(r"^(0[1-9]|1[0-2])(\d{4})$")


@dataclass(frozen=True)
class MonthWindow:
    start: date
    end: date
    code: str


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def month_window(day: date) -> MonthWindow:
    """Calendar month containing ``day``; both ends inclusive."""
    first = day.replace(day=1)
    if first.month == 12:
        end = first.replace(day=31)
    else:
        end = first.replace(month=first.month + 1) - date.resolution
    return MonthWindow(first, end, f"{first.month:02d}{first.year:04d}")


def parse_month_code(code: str) -> date:
    """Return the first day of the month named by an ``MMYYYY`` code."""
    match = _MONTH_CODE_RE.match(code or "")
    if not match:
        raise ValueError(f"Malformed month code: {code!r}")
    month, year = int(match.group(1)), int(match.group(2))
    if year < 1:
        raise ValueError(f"Malformed month code: {code!r}")
    return date(year, month, 1)
