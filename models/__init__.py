"""
Data models package for the Clerkship Scheduler.

This package exports the three core pillars of the data architecture:
1. Demand (Student, Clerkship, Requirement, Elective)
2. Supply (Preceptor, Team, Availability, Capacity)
3. Output (Assignment, Violation, SchedulingResult)
"""

from .roster import (
    HealthSystem,
    Preceptor,
    Site,
    Student
)

from .clerkship import (
    AssignmentStrategy,
    Clerkship,
    Elective,
    ElectiveOverrideMode,
    HealthSystemRule,
    OverrideMode,
    Requirement,
    RequirementType,
    SchedulingSettings,
    SettingsOverride
)

from .availability import (
    AvailabilityException,
    AvailabilityPattern,
    BlackoutDate,
    MonthlyType,
    PatternType,
    WeekDefinition
)

from .capacity import CapacityLimits, CapacityRule, SiteCapacityRule

from .team import (
    PreceptorTeam,
    TeamMember,
    TeamRules,
    TeamValidationResult
)

from .schedule import (
    Assignment,
    AssignmentStatus,
    CandidateAssignment,
    PendingApproval,
    RequirementOutcome,
    RequirementStatus,
    ScheduleOptions,
    SchedulingResult,
    SchedulingStatistics,
    UnmetRequirement,
    Violation,
    ViolationStats
)

from .snapshot import ScheduleSnapshot

__all__ = [
    # --- Roster Models ---
    "HealthSystem",
    "Preceptor",
    "Site",
    "Student",

    # --- Demand Models ---
    "AssignmentStrategy",
    "Clerkship",
    "Elective",
    "ElectiveOverrideMode",
    "HealthSystemRule",
    "OverrideMode",
    "Requirement",
    "RequirementType",
    "SchedulingSettings",
    "SettingsOverride",

    # --- Supply & Constraint Models ---
    "AvailabilityException",
    "AvailabilityPattern",
    "BlackoutDate",
    "MonthlyType",
    "PatternType",
    "WeekDefinition",
    "CapacityLimits",
    "CapacityRule",
    "SiteCapacityRule",
    "PreceptorTeam",
    "TeamMember",
    "TeamRules",
    "TeamValidationResult",

    # --- Output Models ---
    "Assignment",
    "AssignmentStatus",
    "CandidateAssignment",
    "PendingApproval",
    "RequirementOutcome",
    "RequirementStatus",
    "ScheduleOptions",
    "SchedulingResult",
    "SchedulingStatistics",
    "UnmetRequirement",
    "Violation",
    "ViolationStats",

    # --- Input Bundle ---
    "ScheduleSnapshot",
]
