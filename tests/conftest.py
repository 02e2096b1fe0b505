"""Shared pytest fixtures for scheduler tests."""

from datetime import date, timedelta
from typing import List, Optional

import pytest

from models import (
    Assignment,
    AvailabilityPattern,
    BlackoutDate,
    CapacityRule,
    Clerkship,
    HealthSystem,
    PatternType,
    Preceptor,
    PreceptorTeam,
    RequirementType,
    ScheduleOptions,
    ScheduleSnapshot,
    SettingsOverride,
    Site,
    SiteCapacityRule,
    Student,
    TeamMember,
)
from scheduler.config import SchedulerConfig
from scheduler.engine import SchedulingEngine
from scheduler.repository import InMemoryRepository

# Monday
MONDAY = date(2026, 1, 5)
WEEKDAYS = [0, 1, 2, 3, 4]


# -----------------------------------------------------------------------------
# Factory functions for test data creation
# -----------------------------------------------------------------------------


def make_health_system(system_id: str = "hs_valley", name: str = "Valley Health") -> HealthSystem:
    return HealthSystem(id=system_id, name=name)


def make_site(site_id: str = "site_valley", health_system_id: str = "hs_valley") -> Site:
    return Site(id=site_id, name=f"Site {site_id}", health_system_id=health_system_id)


def make_student(
    student_id: str = "stu_1",
    health_system_id: Optional[str] = "hs_valley",
) -> Student:
    """Create a test student with sensible defaults."""
    return Student(
        id=student_id,
        name=f"Student {student_id}",
        email=f"{student_id}@med.example.edu",
        health_system_id=health_system_id,
    )


def make_preceptor(
    preceptor_id: str = "prec_1",
    health_system_id: Optional[str] = "hs_valley",
    site_ids: Optional[List[str]] = None,
    specialty: Optional[str] = "Family Medicine",
    clerkship_ids: Optional[List[str]] = None,
    is_global_fallback_only: bool = False,
) -> Preceptor:
    """Create a test preceptor. Teaches clk_fm unless told otherwise."""
    return Preceptor(
        id=preceptor_id,
        name=f"Dr. {preceptor_id}",
        email=f"{preceptor_id}@valley.example.org",
        health_system_id=health_system_id,
        site_ids=site_ids if site_ids is not None else ["site_valley"],
        specialty=specialty,
        clerkship_ids=clerkship_ids if clerkship_ids is not None else ["clk_fm"],
        is_global_fallback_only=is_global_fallback_only,
    )


def make_clerkship(
    clerkship_id: str = "clk_fm",
    required_days: int = 5,
    settings: Optional[SettingsOverride] = None,
    **kwargs,
) -> Clerkship:
    """Create a test clerkship (outpatient, Family Medicine)."""
    return Clerkship(
        id=clerkship_id,
        name=f"Clerkship {clerkship_id}",
        specialty=kwargs.pop("specialty", "Family Medicine"),
        clerkship_type=kwargs.pop("clerkship_type", RequirementType.OUTPATIENT),
        required_days=required_days,
        settings=settings or SettingsOverride(),
        **kwargs,
    )


def make_weekly_pattern(
    preceptor_id: str,
    start: date = MONDAY,
    end: date = MONDAY + timedelta(days=27),
    days_of_week: Optional[List[int]] = None,
    pattern_id: Optional[str] = None,
    **kwargs,
) -> AvailabilityPattern:
    return AvailabilityPattern(
        id=pattern_id or f"pat_{preceptor_id}",
        preceptor_id=preceptor_id,
        pattern_type=PatternType.WEEKLY,
        date_range_start=start,
        date_range_end=end,
        days_of_week=days_of_week if days_of_week is not None else WEEKDAYS,
        **kwargs,
    )


def make_individual_pattern(preceptor_id: str, day: date, is_available: bool = True, pattern_id: Optional[str] = None) -> AvailabilityPattern:
    return AvailabilityPattern(
        id=pattern_id or f"pat_{preceptor_id}_{day.isoformat()}",
        preceptor_id=preceptor_id,
        pattern_type=PatternType.INDIVIDUAL,
        is_available=is_available,
        date_range_start=day,
        date_range_end=day,
    )


def make_capacity_rule(
    preceptor_id: str,
    per_day: int = 1,
    per_year: int = 50,
    rule_id: Optional[str] = None,
    **kwargs,
) -> CapacityRule:
    return CapacityRule(
        id=rule_id or f"cap_{preceptor_id}",
        preceptor_id=preceptor_id,
        max_students_per_day=per_day,
        max_students_per_year=per_year,
        **kwargs,
    )


def make_site_capacity_rule(
    site_id: str,
    per_day: int = 1,
    per_year: int = 50,
    rule_id: Optional[str] = None,
    **kwargs,
) -> SiteCapacityRule:
    return SiteCapacityRule(
        id=rule_id or f"sitecap_{site_id}",
        site_id=site_id,
        max_students_per_day=per_day,
        max_students_per_year=per_year,
        **kwargs,
    )


def make_team(
    team_id: str,
    member_ids: List[str],
    clerkship_id: str = "clk_fm",
    fallback_ids: Optional[List[str]] = None,
    **kwargs,
) -> PreceptorTeam:
    members = [TeamMember(preceptor_id=pid, priority=i + 1) for i, pid in enumerate(member_ids)]
    for pid in fallback_ids or []:
        members.append(TeamMember(preceptor_id=pid, priority=len(members) + 1, is_fallback_only=True))
    return PreceptorTeam(id=team_id, name=f"Team {team_id}", clerkship_id=clerkship_id, members=members, **kwargs)


def make_assignment(
    student_id: str,
    preceptor_id: str,
    day: date,
    clerkship_id: str = "clk_fm",
    requirement_type: RequirementType = RequirementType.OUTPATIENT,
    site_id: Optional[str] = None,
) -> Assignment:
    return Assignment(
        id=Assignment.make_id(student_id, clerkship_id, day),
        student_id=student_id,
        preceptor_id=preceptor_id,
        clerkship_id=clerkship_id,
        date=day,
        requirement_type=requirement_type,
        site_id=site_id,
    )


def make_blackout(day: date, blackout_id: str = "blk_1", end_date: Optional[date] = None) -> BlackoutDate:
    return BlackoutDate(id=blackout_id, date=day, end_date=end_date, reason="Holiday")


def make_snapshot(**kwargs) -> ScheduleSnapshot:
    """Snapshot with one health system and site unless overridden."""
    kwargs.setdefault("health_systems", [make_health_system()])
    kwargs.setdefault("sites", [make_site()])
    return ScheduleSnapshot(**kwargs)


def make_repository(**kwargs) -> InMemoryRepository:
    return InMemoryRepository(make_snapshot(**kwargs))


def make_options(days: int = 5, start: date = MONDAY, **kwargs) -> ScheduleOptions:
    """Window of `days` calendar days starting on a Monday."""
    return ScheduleOptions(start_date=start, end_date=start + timedelta(days=days - 1), **kwargs)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def config() -> SchedulerConfig:
    return SchedulerConfig(max_retries_per_student=1)


@pytest.fixture
def basic_repo() -> InMemoryRepository:
    """Two weekday preceptors (2 students/day each), three students, one 5-day clerkship."""
    return make_repository(
        students=[make_student("stu_1"), make_student("stu_2"), make_student("stu_3")],
        preceptors=[make_preceptor("prec_1"), make_preceptor("prec_2")],
        clerkships=[make_clerkship()],
        availability_patterns=[make_weekly_pattern("prec_1"), make_weekly_pattern("prec_2")],
    )


@pytest.fixture
def engine(basic_repo, config) -> SchedulingEngine:
    return SchedulingEngine(basic_repo, config)
