"""Display helpers for chat messages (Indonesian number style)."""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from .periods import DEFAULT_TIMEZONE, BudgetPeriod, local_date_of


def format_number(value) -> str:
    """1250000 -> '1.250.000'; 1250.5 -> '1.250,5'."""
    amount = round(float(value or 0), 2)
    sign = "-" if amount < 0 else ""
    whole, _, fraction = f"{abs(amount):.2f}".partition(".")
    grouped = f"{int(whole):,}".replace(",", ".")
    fraction = fraction.rstrip("0")
    if fraction:
        return f"{sign}{grouped},{fraction}"
    return f"{sign}{grouped}"


def format_idr(value, currency: str = "Rp") -> str:
    return f"{currency} {format_number(value)}"


def format_period_date(value) -> str:
    """'2025-01-03' -> "03 Jan '25"."""
    day: Optional[date] = local_date_of(value)
    if day is None:
        return str(value)
    return day.strftime("%d %b '%y")


def format_period(period: BudgetPeriod) -> str:
    return f"{format_period_date(period.start)} - {format_period_date(period.end)}"


def format_timestamp(value, tz: str = DEFAULT_TIMEZONE) -> str:
    """ISO timestamp -> "03 Jan '25 14:05" in the ledger timezone."""
    if not value:
        return "-"
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(ZoneInfo(tz))
    return parsed.strftime("%d %b '%y %H:%M")
