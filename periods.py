from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def _one_month_before(day: date) -> date:
    if day.month == 1:
        year, month = day.year - 1, 12
    else:
        year, month = day.year, day.month - 1
    # Clamp to the last day of the shorter month (Mar 31 -> Feb 28/29).
    next_first = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    last_day = (next_first - date.resolution).day
    return date(year, month, min(day.day, last_day))


def resolve_period(
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    """Inclusive report range; defaults to the month leading up to today."""
    today = today or date.today()
    end_date = date.fromisoformat(end) if end else today
    start_date = date.fromisoformat(start) if start else _one_month_before(end_date)
    if start_date > end_date:
        raise ValueError("Start date must be before end date")
    return Period(start_date, end_date)
