"""
Capacity Rule Resolution.

Rules are a flat collection keyed by (preceptor, optional clerkship, optional
requirement type). The single most specific eligible rule wins:

    (preceptor, clerkship, type) = 4
    (preceptor, clerkship)       = 3
    (preceptor, type)            = 2
    (preceptor)                  = 1

A rule is only eligible if every scope it sets matches the request. With no
eligible rule, the resolved settings' capacity defaults apply.

Site rules use the same scoping keyed by site and bound every student placed
at the site, whichever preceptor teaches them.
"""

from dataclasses import dataclass
from datetime import date as date_type
from typing import List, Optional

from models import CapacityLimits, CapacityRule, RequirementType, SchedulingSettings, SiteCapacityRule
from .state import SchedulerState

CHECK_DAILY = "daily"
CHECK_YEARLY = "yearly"
CHECK_BLOCK = "block"
CHECK_BLOCKS_PER_YEAR = "blocks_per_year"


@dataclass
class EffectiveCapacity:
    """Ceilings in force for one (preceptor, clerkship, requirement type)."""
    max_students_per_day: int
    max_students_per_year: int
    max_students_per_block: Optional[int] = None
    max_blocks_per_year: Optional[int] = None
    source: str = "default"  # "rule" or "default"
    rule_id: Optional[str] = None


@dataclass
class CapacityCheck:
    """Remaining capacity for a candidate placement. Exhaustion is remaining == 0."""
    has_capacity: bool
    remaining: int
    current_count: int
    max_allowed: int
    check_type: str
    reason: Optional[str] = None


def check_limits(
    limits: EffectiveCapacity,
    ledger: SchedulerState,
    owner_id: str,
    day: date_type,
    student_id: str,
    clerkship_id: str,
    block_number: Optional[int] = None,
    site: bool = False
) -> CapacityCheck:
    """
    Compare one owner's ledger counts against its ceilings. The owner is a
    preceptor, or a site when site=True.
    """
    if site:
        label = "Site"
        on_day = ledger.site_count_on_day(owner_id, day)
        students = ledger.site_students_in_year(owner_id, day.year)
    else:
        label = "Preceptor"
        on_day = ledger.count_on_day(owner_id, day)
        students = ledger.students_in_year(owner_id, day.year)

    # 1. Daily (across every clerkship)
    if on_day >= limits.max_students_per_day:
        return CapacityCheck(
            False, 0, on_day, limits.max_students_per_day, CHECK_DAILY,
            f"{label} at daily capacity ({on_day}/{limits.max_students_per_day}) on {day.isoformat()}"
        )

    # 2. Yearly (distinct students per calendar year)
    if student_id not in students and len(students) >= limits.max_students_per_year:
        return CapacityCheck(
            False, 0, len(students), limits.max_students_per_year, CHECK_YEARLY,
            f"{label} at yearly capacity ({len(students)}/{limits.max_students_per_year}) for {day.year}"
        )

    # 3. Block limits (only when placing into a numbered block)
    if block_number is not None and limits.max_students_per_block is not None:
        if site:
            in_block = ledger.site_students_in_block(owner_id, clerkship_id, block_number, day.year)
            blocks = ledger.site_blocks_in_year(owner_id, day.year)
        else:
            in_block = ledger.students_in_block(owner_id, clerkship_id, block_number, day.year)
            blocks = ledger.blocks_in_year(owner_id, day.year)

        if student_id not in in_block and len(in_block) >= limits.max_students_per_block:
            return CapacityCheck(
                False, 0, len(in_block), limits.max_students_per_block, CHECK_BLOCK,
                f"Block {block_number} is full ({len(in_block)}/{limits.max_students_per_block})"
            )

        block_key = (student_id, clerkship_id, block_number)
        if limits.max_blocks_per_year is not None and block_key not in blocks \
                and len(blocks) >= limits.max_blocks_per_year:
            return CapacityCheck(
                False, 0, len(blocks), limits.max_blocks_per_year, CHECK_BLOCKS_PER_YEAR,
                f"{label} at yearly block limit ({len(blocks)}/{limits.max_blocks_per_year})"
            )

    return CapacityCheck(
        True,
        limits.max_students_per_day - on_day,
        on_day,
        limits.max_students_per_day,
        CHECK_DAILY,
    )


def _most_specific(rules: List[CapacityLimits], clerkship_id: Optional[str], requirement_type: Optional[RequirementType]):
    best = None
    for rule in rules:
        if rule.clerkship_id is not None and rule.clerkship_id != clerkship_id:
            continue
        if rule.requirement_type is not None and rule.requirement_type != requirement_type:
            continue
        # Strict '>' keeps the first rule on ties
        if best is None or rule.specificity > best.specificity:
            best = rule
    return best


def _limits_of(rule: CapacityLimits) -> EffectiveCapacity:
    return EffectiveCapacity(
        max_students_per_day=rule.max_students_per_day,
        max_students_per_year=rule.max_students_per_year,
        max_students_per_block=rule.max_students_per_block,
        max_blocks_per_year=rule.max_blocks_per_year,
        source="rule",
        rule_id=rule.id,
    )


class CapacityResolver:

    def __init__(self, rules: List[CapacityRule]):
        self.rules = list(rules)

    def resolve_rule(
        self,
        preceptor_id: str,
        clerkship_id: Optional[str] = None,
        requirement_type: Optional[RequirementType] = None
    ) -> Optional[CapacityRule]:
        own = [r for r in self.rules if r.preceptor_id == preceptor_id]
        return _most_specific(own, clerkship_id, requirement_type)

    def effective(
        self,
        preceptor_id: str,
        clerkship_id: Optional[str],
        requirement_type: Optional[RequirementType],
        settings: SchedulingSettings
    ) -> EffectiveCapacity:
        rule = self.resolve_rule(preceptor_id, clerkship_id, requirement_type)
        if rule is None:
            return EffectiveCapacity(
                max_students_per_day=settings.max_students_per_day,
                max_students_per_year=settings.max_students_per_year,
                max_students_per_block=settings.max_students_per_block,
                max_blocks_per_year=settings.max_blocks_per_year,
            )
        return _limits_of(rule)

    def check(
        self,
        preceptor_id: str,
        day: date_type,
        ledger: SchedulerState,
        student_id: str,
        clerkship_id: str,
        requirement_type: Optional[RequirementType],
        settings: SchedulingSettings,
        block_number: Optional[int] = None
    ) -> CapacityCheck:
        """
        Remaining capacity given everything already in the ledger (this run's
        placements plus persisted assignments). Never raises.
        """
        limits = self.effective(preceptor_id, clerkship_id, requirement_type, settings)
        return check_limits(limits, ledger, preceptor_id, day, student_id, clerkship_id, block_number)


class SiteCapacityResolver:
    """
    Site-wide ceilings. Same scoping as preceptor rules, keyed by site; a site
    without an eligible rule is unbounded.
    """

    def __init__(self, rules: List[SiteCapacityRule]):
        self.rules = list(rules)

    def resolve_rule(
        self,
        site_id: str,
        clerkship_id: Optional[str] = None,
        requirement_type: Optional[RequirementType] = None
    ) -> Optional[SiteCapacityRule]:
        own = [r for r in self.rules if r.site_id == site_id]
        return _most_specific(own, clerkship_id, requirement_type)

    def check(
        self,
        site_id: str,
        day: date_type,
        ledger: SchedulerState,
        student_id: str,
        clerkship_id: str,
        requirement_type: Optional[RequirementType],
        block_number: Optional[int] = None
    ) -> Optional[CapacityCheck]:
        """None when no rule bounds the site."""
        rule = self.resolve_rule(site_id, clerkship_id, requirement_type)
        if rule is None:
            return None
        return check_limits(_limits_of(rule), ledger, site_id, day, student_id, clerkship_id, block_number, site=True)
