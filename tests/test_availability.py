"""Tests for availability pattern expansion and resolution.

Patterns apply in ascending specificity (weekly/monthly < block < individual),
each pattern's exceptions right after it, blackouts last.
"""

from datetime import date, timedelta

import pytest

from models import (
    AvailabilityException,
    AvailabilityPattern,
    MonthlyType,
    PatternType,
    WeekDefinition,
)
from scheduler.availability import AvailabilityResolver, expand_pattern, monthly_dates
from scheduler.errors import NotFoundError

from .conftest import (
    MONDAY,
    make_blackout,
    make_individual_pattern,
    make_preceptor,
    make_repository,
    make_weekly_pattern,
)


def _resolver(patterns, blackouts=None) -> AvailabilityResolver:
    repo = make_repository(
        preceptors=[make_preceptor("prec_1")],
        availability_patterns=patterns,
        blackout_dates=blackouts or [],
    )
    return AvailabilityResolver(repo)


def _monthly(monthly_type: MonthlyType, week_definition=None, specific_days=None) -> AvailabilityPattern:
    return AvailabilityPattern(
        id="pat_monthly",
        preceptor_id="prec_1",
        pattern_type=PatternType.MONTHLY,
        date_range_start=date(2026, 1, 1),
        date_range_end=date(2026, 12, 31),
        monthly_type=monthly_type,
        week_definition=week_definition,
        specific_days=specific_days or [],
    )


class TestPatternExpansion:
    """Single-pattern expansion."""

    def test_weekly_pattern_yields_listed_weekdays_only(self) -> None:
        pattern = make_weekly_pattern("prec_1", days_of_week=[0, 2])
        dates = expand_pattern(pattern, MONDAY, MONDAY + timedelta(days=13))
        assert dates == [
            MONDAY, MONDAY + timedelta(days=2),
            MONDAY + timedelta(days=7), MONDAY + timedelta(days=9),
        ]

    def test_expansion_is_clipped_to_pattern_range(self) -> None:
        pattern = make_weekly_pattern("prec_1", start=MONDAY, end=MONDAY + timedelta(days=2))
        dates = expand_pattern(pattern, MONDAY - timedelta(days=10), MONDAY + timedelta(days=30))
        assert dates == [MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=2)]

    def test_block_pattern_can_exclude_weekends(self) -> None:
        pattern = AvailabilityPattern(
            id="pat_block",
            preceptor_id="prec_1",
            pattern_type=PatternType.BLOCK,
            date_range_start=MONDAY,
            date_range_end=MONDAY + timedelta(days=6),
            exclude_weekends=True,
        )
        assert len(expand_pattern(pattern, MONDAY, MONDAY + timedelta(days=6))) == 5

    def test_first_business_week(self) -> None:
        # Jan 1 2026 is a Thursday
        dates = monthly_dates(_monthly(MonthlyType.FIRST_BUSINESS_WEEK), 2026, 1)
        assert [d.day for d in dates] == [1, 2, 5, 6, 7]

    def test_first_calendar_week_starts_on_sunday(self) -> None:
        pattern = _monthly(MonthlyType.FIRST_WEEK, WeekDefinition.CALENDAR)
        # Feb 1 2026 is a Sunday
        assert [d.day for d in monthly_dates(pattern, 2026, 2)] == [1, 2, 3, 4, 5, 6, 7]
        # Jan 2026: first Sunday is the 4th
        assert [d.day for d in monthly_dates(pattern, 2026, 1)] == [4, 5, 6, 7, 8, 9, 10]

    def test_last_seven_days(self) -> None:
        pattern = _monthly(MonthlyType.LAST_WEEK, WeekDefinition.SEVEN_DAYS)
        assert [d.day for d in monthly_dates(pattern, 2026, 2)] == [22, 23, 24, 25, 26, 27, 28]

    def test_specific_days_skip_missing_dates(self) -> None:
        pattern = _monthly(MonthlyType.SPECIFIC_DAYS, specific_days=[15, 31])
        assert [d.day for d in monthly_dates(pattern, 2026, 2)] == [15]
        assert [d.day for d in monthly_dates(pattern, 2026, 3)] == [15, 31]


class TestResolution:
    """Layered resolution across patterns, exceptions and blackouts."""

    def test_individual_unavailable_overrides_weekly(self) -> None:
        off = MONDAY + timedelta(days=1)
        # Declared before the weekly pattern; specificity still wins
        resolver = _resolver([
            make_individual_pattern("prec_1", off, is_available=False),
            make_weekly_pattern("prec_1"),
        ])
        dates = resolver.resolve("prec_1", MONDAY, MONDAY + timedelta(days=4))
        assert off not in dates
        assert len(dates) == 4

    def test_block_unavailable_overrides_weekly(self) -> None:
        resolver = _resolver([
            make_weekly_pattern("prec_1"),
            AvailabilityPattern(
                id="pat_leave",
                preceptor_id="prec_1",
                pattern_type=PatternType.BLOCK,
                is_available=False,
                date_range_start=MONDAY + timedelta(days=7),
                date_range_end=MONDAY + timedelta(days=13),
            ),
        ])
        dates = resolver.resolve("prec_1", MONDAY, MONDAY + timedelta(days=13))
        assert dates == [MONDAY + timedelta(days=i) for i in range(5)]

    def test_exceptions_add_and_remove_dates(self) -> None:
        saturday = MONDAY + timedelta(days=5)
        tuesday = MONDAY + timedelta(days=1)
        pattern = make_weekly_pattern("prec_1", exceptions=[
            AvailabilityException(date=saturday, is_available=True, reason="Weekend clinic"),
            AvailabilityException(date=tuesday, is_available=False, reason="Sick"),
        ])
        dates = _resolver([pattern]).resolve("prec_1", MONDAY, MONDAY + timedelta(days=6))
        assert saturday in dates
        assert tuesday not in dates

    def test_disabled_pattern_is_ignored(self) -> None:
        resolver = _resolver([make_weekly_pattern("prec_1", enabled=False)])
        assert resolver.resolve("prec_1", MONDAY, MONDAY + timedelta(days=6)) == []

    def test_blackouts_are_removed_last(self) -> None:
        wednesday = MONDAY + timedelta(days=2)
        resolver = _resolver(
            [make_individual_pattern("prec_1", wednesday), make_weekly_pattern("prec_1")],
            blackouts=[make_blackout(wednesday)],
        )
        dates = resolver.resolve("prec_1", MONDAY, MONDAY + timedelta(days=4))
        assert wednesday not in dates
        assert resolver.is_blackout(wednesday)

    def test_blackout_range_is_inclusive(self) -> None:
        resolver = _resolver(
            [make_weekly_pattern("prec_1")],
            blackouts=[make_blackout(MONDAY, end_date=MONDAY + timedelta(days=2))],
        )
        dates = resolver.resolve("prec_1", MONDAY, MONDAY + timedelta(days=4))
        assert dates == [MONDAY + timedelta(days=3), MONDAY + timedelta(days=4)]

    def test_site_scoped_patterns_only_apply_to_their_site(self) -> None:
        resolver = _resolver([
            make_weekly_pattern("prec_1", pattern_id="pat_a", days_of_week=[0], site_id="site_a"),
            make_weekly_pattern("prec_1", pattern_id="pat_b", days_of_week=[1], site_id="site_b"),
        ])
        window = (MONDAY, MONDAY + timedelta(days=6))
        assert resolver.resolve("prec_1", *window, site_id="site_a") == [MONDAY]
        assert resolver.resolve("prec_1", *window) == [MONDAY, MONDAY + timedelta(days=1)]

    def test_result_is_sorted_unique_and_in_range(self) -> None:
        resolver = _resolver([
            make_weekly_pattern("prec_1", pattern_id="pat_a"),
            make_weekly_pattern("prec_1", pattern_id="pat_b", days_of_week=[0, 1, 2]),
        ])
        start, end = MONDAY + timedelta(days=1), MONDAY + timedelta(days=10)
        dates = resolver.resolve("prec_1", start, end)
        assert dates == sorted(set(dates))
        assert all(start <= d <= end for d in dates)

    def test_is_available_matches_resolve(self) -> None:
        resolver = _resolver([make_weekly_pattern("prec_1")])
        end = MONDAY + timedelta(days=6)
        assert resolver.is_available("prec_1", MONDAY, MONDAY, end)
        assert not resolver.is_available("prec_1", MONDAY + timedelta(days=5), MONDAY, end)

    def test_unknown_preceptor_raises(self) -> None:
        with pytest.raises(NotFoundError):
            _resolver([]).resolve("prec_missing", MONDAY, MONDAY)
