"""
Hard Constraint Validation Logic.

This module answers the binary question: "Can Student S be placed with
Preceptor P on Day D?" It enforces the calendar (range, blackouts, no student
double-booking), student onboarding, the preceptor's availability at a site
the requirement may use, preceptor and site capacity, and health-system
continuity.
"""

from dataclasses import dataclass, field
from datetime import date as date_type
from typing import List, Optional, Tuple

from models import HealthSystemRule, Preceptor, RequirementType, SchedulingSettings
from .availability import AvailabilityResolver, permitted_sites
from .capacity import CapacityResolver, SiteCapacityResolver
from .state import SchedulerState

# Constraint names (also used as violation names)
DATE_RANGE = "date-range"
BLACKOUT_DATE = "blackout-date"
STUDENT_DOUBLE_BOOKING = "student-double-booking"
STUDENT_ONBOARDING = "student-onboarding"
PRECEPTOR_AVAILABILITY = "preceptor-availability"
PRECEPTOR_CAPACITY = "preceptor-capacity"
SITE_CAPACITY = "site-capacity"
HEALTH_SYSTEM_CONTINUITY = "health-system-continuity"


@dataclass
class ConstraintViolation:
    """Detailed reason for rejection."""
    constraint_type: str  # e.g., "preceptor-capacity"
    reason: str
    student_id: str
    date: date_type
    preceptor_id: Optional[str] = None


@dataclass
class PlacementContext:
    """Everything about the requirement being placed that the checks need."""
    student_id: str
    clerkship_id: str
    requirement_type: RequirementType
    settings: SchedulingSettings
    start: date_type
    end: date_type
    elective_id: Optional[str] = None
    reference_system: Optional[str] = None  # Health system continuity anchor
    site_ids: List[str] = field(default_factory=list)  # Empty = any site
    onboarded_systems: Optional[List[str]] = None  # None = onboarding not tracked


class ConstraintChecker:
    """
    Validates hard constraints for a single placement.
    """

    def __init__(
        self,
        availability: AvailabilityResolver,
        capacity: CapacityResolver,
        site_capacity: Optional[SiteCapacityResolver] = None
    ):
        self.availability = availability
        self.capacity = capacity
        self.site_capacity = site_capacity or SiteCapacityResolver([])

    def check_day(self, ctx: PlacementContext, day: date_type, ledger: SchedulerState) -> Optional[ConstraintViolation]:
        """Preceptor-independent checks: is the date usable at all for this student?"""
        if not ctx.start <= day <= ctx.end:
            return ConstraintViolation(DATE_RANGE, "Date outside the scheduling window", ctx.student_id, day)
        if self.availability.is_blackout(day):
            return ConstraintViolation(BLACKOUT_DATE, "Date is blacked out", ctx.student_id, day)
        if ledger.is_student_booked(ctx.student_id, day):
            return ConstraintViolation(
                STUDENT_DOUBLE_BOOKING, "Student already has an assignment on this date", ctx.student_id, day
            )
        return None

    def check_placement(
        self,
        ctx: PlacementContext,
        preceptor: Preceptor,
        day: date_type,
        ledger: SchedulerState,
        block_number: Optional[int] = None,
        enforce_continuity: bool = True
    ) -> Optional[ConstraintViolation]:
        """
        Master validation function. Returns None if valid, a violation otherwise.
        """
        violation, _ = self.evaluate(ctx, preceptor, day, ledger, block_number, enforce_continuity)
        return violation

    def evaluate(
        self,
        ctx: PlacementContext,
        preceptor: Preceptor,
        day: date_type,
        ledger: SchedulerState,
        block_number: Optional[int] = None,
        enforce_continuity: bool = True
    ) -> Tuple[Optional[ConstraintViolation], Optional[str]]:
        """
        Like check_placement, also returning the site the day would be taught
        at (None when the preceptor has no site affiliation).
        """
        # 1. Calendar
        violation = self.check_day(ctx, day, ledger)
        if violation:
            return violation, None

        # 2. Onboarding
        violation = self._check_onboarding(ctx, preceptor, day)
        if violation:
            return violation, None

        # 3. Availability at a permitted site
        sites = [
            s for s in permitted_sites(preceptor, ctx.site_ids)
            if self.availability.is_available(preceptor.id, day, ctx.start, ctx.end, s)
        ]
        if not sites:
            return ConstraintViolation(
                PRECEPTOR_AVAILABILITY, f"{preceptor.name} is not available at a permitted site",
                ctx.student_id, day, preceptor.id
            ), None

        # 4. Preceptor capacity
        check = self.capacity.check(
            preceptor.id, day, ledger, ctx.student_id, ctx.clerkship_id,
            ctx.requirement_type, ctx.settings, block_number=block_number
        )
        if not check.has_capacity:
            return ConstraintViolation(PRECEPTOR_CAPACITY, check.reason, ctx.student_id, day, preceptor.id), None

        # 5. Site capacity (first available site with room)
        site_id, violation = self._pick_site(ctx, preceptor, sites, day, ledger, block_number)
        if violation:
            return violation, None

        # 6. Health system continuity
        if enforce_continuity:
            violation = self._check_continuity(ctx, preceptor, day)
            if violation:
                return violation, None

        return None, site_id  # All clear!

    def _check_onboarding(self, ctx: PlacementContext, preceptor: Preceptor, day: date_type) -> Optional[ConstraintViolation]:
        if ctx.onboarded_systems is None or preceptor.health_system_id is None:
            return None
        if preceptor.health_system_id in ctx.onboarded_systems:
            return None
        return ConstraintViolation(
            STUDENT_ONBOARDING,
            f"Student is not onboarded at health system '{preceptor.health_system_id}'",
            ctx.student_id, day, preceptor.id
        )

    def _pick_site(
        self,
        ctx: PlacementContext,
        preceptor: Preceptor,
        sites: List[Optional[str]],
        day: date_type,
        ledger: SchedulerState,
        block_number: Optional[int]
    ) -> Tuple[Optional[str], Optional[ConstraintViolation]]:
        first_refusal = None
        for site_id in sites:
            if site_id is None:
                return None, None
            check = self.site_capacity.check(
                site_id, day, ledger, ctx.student_id, ctx.clerkship_id, ctx.requirement_type, block_number
            )
            if check is None or check.has_capacity:
                return site_id, None
            if first_refusal is None:
                first_refusal = ConstraintViolation(
                    SITE_CAPACITY, f"{check.reason} at site '{site_id}'", ctx.student_id, day, preceptor.id
                )
        return None, first_refusal

    def _check_continuity(self, ctx: PlacementContext, preceptor: Preceptor, day: date_type) -> Optional[ConstraintViolation]:
        if ctx.settings.health_system_rule != HealthSystemRule.ENFORCE_SAME_SYSTEM:
            return None
        if ctx.reference_system is None or preceptor.health_system_id == ctx.reference_system:
            return None
        return ConstraintViolation(
            HEALTH_SYSTEM_CONTINUITY,
            f"{preceptor.name} is outside health system '{ctx.reference_system}'",
            ctx.student_id, day, preceptor.id
        )
