"""Budget periods: monthly windows from the 3rd of one month to the 2nd of the next."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Optional
from zoneinfo import ZoneInfo

PERIOD_START_DAY = 3
DEFAULT_TIMEZONE = "Asia/Jakarta"


def _add_months(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) + months
    return day.replace(year=month_index // 12, month=month_index % 12 + 1)


@dataclass(frozen=True)
class BudgetPeriod:
    start: date
    end: date

    @classmethod
    def starting(cls, start: date) -> "BudgetPeriod":
        start = start.replace(day=PERIOD_START_DAY)
        end = _add_months(start, 1).replace(day=PERIOD_START_DAY - 1)
        return cls(start=start, end=end)

    @classmethod
    def from_iso(cls, start: str, end: str) -> "BudgetPeriod":
        start_date = date.fromisoformat(str(start)[:10])
        end_date = date.fromisoformat(str(end)[:10])
        if start_date > end_date:
            raise ValueError("Period start must not be after its end")
        return cls(start=start_date, end=end_date)

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def previous(self) -> "BudgetPeriod":
        return BudgetPeriod.starting(_add_months(self.start, -1))

    def next(self) -> "BudgetPeriod":
        return BudgetPeriod.starting(_add_months(self.start, 1))

    def as_dict(self) -> Dict[str, str]:
        return {"start": self.start_iso, "end": self.end_iso}


def period_containing(day: date) -> BudgetPeriod:
    """Return the budget period that contains ``day``."""
    if day.day < PERIOD_START_DAY:
        return BudgetPeriod.starting(_add_months(day.replace(day=1), -1))
    return BudgetPeriod.starting(day)


def local_today(now: Optional[datetime] = None, tz: str = DEFAULT_TIMEZONE) -> date:
    """Calendar date of ``now`` in the ledger timezone.

    Naive datetimes are taken to already be in the ledger timezone.
    """
    zone = ZoneInfo(tz)
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(zone).date()


def current_period(now: Optional[datetime] = None, tz: str = DEFAULT_TIMEZONE) -> BudgetPeriod:
    return period_containing(local_today(now, tz))


def local_date_of(value, tz: str = DEFAULT_TIMEZONE) -> Optional[date]:
    """Parse a stored date or timestamp into a calendar date in ``tz``.

    Plain ``YYYY-MM-DD`` strings are returned as-is; timestamps carrying an
    offset are converted to the ledger timezone first.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return local_today(value, tz)
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if len(text) == 10:
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return local_today(parsed, tz)
