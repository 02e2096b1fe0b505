"""
Availability Resolution.

This module answers: "On which dates can Preceptor X teach?"
Recurring patterns are expanded into concrete dates, applied in ascending
specificity (weekly/monthly < block < individual) so that more specific
patterns overwrite less specific ones. Each pattern's own exceptions are
applied right after it. Global blackout dates are subtracted last.
"""

import calendar
from datetime import date as date_type, timedelta
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from models import AvailabilityPattern, MonthlyType, PatternType, Preceptor, WeekDefinition
from .repository import ScheduleRepository

SUNDAY = 6
SATURDAY = 5


def iter_days(start: date_type, end: date_type) -> Iterator[date_type]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def is_weekend(day: date_type) -> bool:
    return day.weekday() >= SATURDAY


def permitted_sites(preceptor: Preceptor, allowed: Sequence[str]) -> List[Optional[str]]:
    """
    Sites the preceptor may teach at when the requirement is limited to
    `allowed` (empty = any site). A preceptor without affiliations yields
    [None]: every pattern applies to them.
    """
    if not preceptor.site_ids:
        return [None]
    if not allowed:
        return list(preceptor.site_ids)
    return [s for s in preceptor.site_ids if s in allowed]


# --- Monthly helpers (all return dates inside the given month) ---

def _month_days(year: int, month: int) -> List[date_type]:
    last = calendar.monthrange(year, month)[1]
    return [date_type(year, month, d) for d in range(1, last + 1)]


def _first_calendar_week(year: int, month: int) -> List[date_type]:
    """The first Sunday-Saturday week starting inside the month."""
    days = _month_days(year, month)
    first_sunday = next(d for d in days if d.weekday() == SUNDAY)
    return [d for d in days if first_sunday <= d < first_sunday + timedelta(days=7)]


def _last_calendar_week(year: int, month: int) -> List[date_type]:
    """The last Sunday-Saturday week ending inside the month."""
    days = _month_days(year, month)
    last_saturday = next(d for d in reversed(days) if d.weekday() == SATURDAY)
    return [d for d in days if last_saturday - timedelta(days=6) <= d <= last_saturday]


def _business_days(year: int, month: int) -> List[date_type]:
    return [d for d in _month_days(year, month) if not is_weekend(d)]


def monthly_dates(pattern: AvailabilityPattern, year: int, month: int) -> List[date_type]:
    """Dates one monthly pattern produces in one month."""
    days = _month_days(year, month)
    kind = pattern.monthly_type

    if kind == MonthlyType.SPECIFIC_DAYS:
        wanted = set(pattern.specific_days)
        return [d for d in days if d.day in wanted]

    if kind == MonthlyType.FIRST_BUSINESS_WEEK:
        return _business_days(year, month)[:5]
    if kind == MonthlyType.LAST_BUSINESS_WEEK:
        return _business_days(year, month)[-5:]

    if kind == MonthlyType.FIRST_WEEK:
        if pattern.week_definition == WeekDefinition.CALENDAR:
            return _first_calendar_week(year, month)
        if pattern.week_definition == WeekDefinition.BUSINESS:
            return _business_days(year, month)[:5]
        return days[:7]

    if kind == MonthlyType.LAST_WEEK:
        if pattern.week_definition == WeekDefinition.CALENDAR:
            return _last_calendar_week(year, month)
        if pattern.week_definition == WeekDefinition.BUSINESS:
            return _business_days(year, month)[-5:]
        return days[-7:]

    return []


def _months_between(start: date_type, end: date_type) -> Iterator[Tuple[int, int]]:
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        month += 1
        if month > 12:
            year, month = year + 1, 1


def expand_pattern(pattern: AvailabilityPattern, start: date_type, end: date_type) -> List[date_type]:
    """
    Concrete dates a single pattern covers within [start, end] (before exceptions).
    """
    lo = max(start, pattern.date_range_start)
    hi = min(end, pattern.date_range_end)
    if lo > hi:
        return []

    if pattern.pattern_type == PatternType.WEEKLY:
        weekdays = set(pattern.days_of_week)
        return [d for d in iter_days(lo, hi) if d.weekday() in weekdays]

    if pattern.pattern_type == PatternType.MONTHLY:
        dates = []
        for year, month in _months_between(lo, hi):
            dates.extend(d for d in monthly_dates(pattern, year, month) if lo <= d <= hi)
        return dates

    if pattern.pattern_type == PatternType.BLOCK:
        return [d for d in iter_days(lo, hi) if not (pattern.exclude_weekends and is_weekend(d))]

    if pattern.pattern_type == PatternType.INDIVIDUAL:
        return [pattern.date_range_start]

    return []


class AvailabilityResolver:
    """
    Resolves per-preceptor available dates for one run.
    Results are memoized per (preceptor, start, end, site); create a new
    resolver for every run so that edits between runs are picked up.
    """

    def __init__(self, repository: ScheduleRepository):
        self.repository = repository
        self.blackouts = repository.list_blackout_dates()
        self._cache: Dict[Tuple[str, date_type, date_type, Optional[str]], List[date_type]] = {}
        self._sets: Dict[Tuple[str, date_type, date_type, Optional[str]], set] = {}

    def resolve(
        self,
        preceptor_id: str,
        start: date_type,
        end: date_type,
        site_id: Optional[str] = None
    ) -> List[date_type]:
        """
        Ascending, deduplicated dates the preceptor is available in [start, end].
        Raises NotFoundError for an unknown preceptor.
        """
        key = (preceptor_id, start, end, site_id)
        if key in self._cache:
            return self._cache[key]

        # Existence check (raises NotFoundError)
        self.repository.get_preceptor(preceptor_id)

        patterns = [
            p for p in self.repository.list_availability_patterns(preceptor_id)
            if p.enabled and (site_id is None or p.site_id is None or p.site_id == site_id)
        ]
        # Stable sort keeps declaration order among equal specificity
        patterns.sort(key=lambda p: p.specificity)

        state: Dict[date_type, bool] = {}
        for pattern in patterns:
            for day in expand_pattern(pattern, start, end):
                state[day] = pattern.is_available
            for exception in pattern.exceptions:
                if start <= exception.date <= end:
                    state[exception.date] = exception.is_available

        dates = sorted(
            day for day, available in state.items()
            if available and start <= day <= end and not self.is_blackout(day)
        )
        self._cache[key] = dates
        return dates

    def resolve_for_sites(
        self,
        preceptor_id: str,
        start: date_type,
        end: date_type,
        site_ids: Sequence[Optional[str]]
    ) -> List[date_type]:
        """Dates available through at least one of the given sites."""
        dates = set()
        for site_id in site_ids:
            dates.update(self.resolve(preceptor_id, start, end, site_id))
        return sorted(dates)

    def is_available(
        self,
        preceptor_id: str,
        day: date_type,
        start: date_type,
        end: date_type,
        site_id: Optional[str] = None
    ) -> bool:
        """Membership test against the memoized range resolution."""
        return day in self._as_set(preceptor_id, start, end, site_id)

    def _as_set(self, preceptor_id, start, end, site_id) -> set:
        key = (preceptor_id, start, end, site_id)
        if key not in self._sets:
            self._sets[key] = set(self.resolve(preceptor_id, start, end, site_id))
        return self._sets[key]

    def is_blackout(self, day: date_type) -> bool:
        return any(b.covers(day) for b in self.blackouts)
