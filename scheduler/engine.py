"""
The Clerkship Scheduling Engine.

This module implements the core "Solver" logic. For every student and every
clerkship requirement it places the required days against eligible
preceptors, combining:
1. Layered Settings (global -> clerkship -> requirement -> elective) - picks the strategy.
2. Capacity Ledgers - a later placement always sees the capacity used by earlier ones.
3. Resilience Loops (Fallback Chains + bounded Retry) - recovers from exhausted primaries.

Shortfalls never abort a run: they are recorded as violations and reported as
unmet requirements. Structural errors (unknown ids, invalid settings) do.
"""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from models import (
    Assignment,
    AssignmentStatus,
    AssignmentStrategy,
    CandidateAssignment,
    Clerkship,
    Elective,
    HealthSystemRule,
    PendingApproval,
    Preceptor,
    PreceptorTeam,
    Requirement,
    RequirementStatus,
    RequirementType,
    ScheduleOptions,
    SchedulingResult,
    SchedulingSettings,
    SchedulingStatistics,
    Student,
    UnmetRequirement,
)
from .availability import AvailabilityResolver, iter_days, permitted_sites
from .capacity import CapacityResolver, SiteCapacityResolver
from .config import SchedulerConfig, get_config
from .constraints import (
    PRECEPTOR_AVAILABILITY,
    ConstraintChecker,
    ConstraintViolation,
    PlacementContext,
)
from .errors import ConflictError, NotFoundError, ValidationError
from .fallback import FallbackCandidate, FallbackChoice, FallbackResolver
from .overrides import ResolvedSettings, resolve_settings, validate_resolved_settings
from .repository import ScheduleRepository
from .scoring import PreceptorScorer
from .state import OutcomeKey, SchedulerState
from .teams import TeamFormer, TeamValidator, rules_for
from .violations import ViolationTracker

logger = logging.getLogger(__name__)

# Engine-level violation names (per-placement ones live in constraints.py)
NO_ELIGIBLE_PRECEPTOR = "no-eligible-preceptor"
TEAM_FORMATION = "team-formation"
FALLBACK_EXHAUSTED = "fallback-exhausted"
BLOCK_INCOMPLETE = "block-incomplete"
CONTINUITY_INCOMPLETE = "continuity-incomplete"

REQUIREMENT_ORDER = {
    RequirementType.INPATIENT: 0,
    RequirementType.OUTPATIENT: 1,
    RequirementType.ELECTIVE: 2,
}

RequirementUnit = Tuple[RequirementType, Optional[Requirement], Optional[Elective], int]


def default_settings(config: SchedulerConfig) -> SchedulingSettings:
    """Outermost settings layer when no global default is stored."""
    return SchedulingSettings(
        max_students_per_day=config.default_max_students_per_day,
        max_students_per_year=config.default_max_students_per_year,
        team_size_min=config.default_team_size_min,
        team_size_max=config.default_team_size_max,
    )


def expand_requirements(clerkship: Clerkship) -> List[RequirementUnit]:
    """
    Requirements in placement order: inpatient, outpatient, then required
    electives in declaration order.
    """
    electives = [e for e in clerkship.electives if e.is_required]
    elective_days = sum(e.minimum_days for e in electives)
    core_days = clerkship.required_days - elective_days

    units: List[RequirementUnit] = []
    if clerkship.requirements:
        core = [
            r for r in clerkship.requirements
            # An elective-type requirement is the parent layer of the electives, not a unit of its own
            if not (r.requirement_type == RequirementType.ELECTIVE and clerkship.electives)
        ]
        core.sort(key=lambda r: REQUIREMENT_ORDER[r.requirement_type])
        for requirement in core:
            days = requirement.required_days or _split_days(clerkship, requirement.requirement_type) or core_days
            if days > 0:
                units.append((requirement.requirement_type, requirement, None, days))
    elif clerkship.inpatient_days or clerkship.outpatient_days:
        if clerkship.inpatient_days:
            units.append((RequirementType.INPATIENT, None, None, clerkship.inpatient_days))
        if clerkship.outpatient_days:
            units.append((RequirementType.OUTPATIENT, None, None, clerkship.outpatient_days))
    elif core_days > 0:
        units.append((clerkship.clerkship_type, None, None, core_days))

    parent = clerkship.get_requirement(RequirementType.ELECTIVE)
    for elective in electives:
        units.append((RequirementType.ELECTIVE, parent, elective, elective.minimum_days))
    return units


def _split_days(clerkship: Clerkship, requirement_type: RequirementType) -> Optional[int]:
    if requirement_type == RequirementType.INPATIENT:
        return clerkship.inpatient_days
    if requirement_type == RequirementType.OUTPATIENT:
        return clerkship.outpatient_days
    return None


@dataclass
class RequirementTask:
    """One (student, requirement) unit of work."""
    student: Student
    clerkship: Clerkship
    requirement_type: RequirementType
    required_days: int
    resolved: ResolvedSettings
    requirement: Optional[Requirement] = None
    elective: Optional[Elective] = None

    @property
    def settings(self) -> SchedulingSettings:
        return self.resolved.settings

    @property
    def elective_id(self) -> Optional[str]:
        return self.elective.id if self.elective else None

    @property
    def key(self) -> OutcomeKey:
        return (self.student.id, self.clerkship.id, self.requirement_type, self.elective_id)

    def owns(self, assignment: Assignment) -> bool:
        return (
            assignment.student_id == self.student.id
            and assignment.clerkship_id == self.clerkship.id
            and assignment.requirement_type == self.requirement_type
            and assignment.elective_id == self.elective_id
        )


@dataclass
class Staffing:
    """Who may be assigned to a task."""
    primaries: List[Preceptor]
    team: Optional[PreceptorTeam] = None
    requires_approval: bool = False
    chain: List[FallbackCandidate] = field(default_factory=list)


class SchedulingRun:
    """
    One schedule() invocation.
    Owns every piece of run-scoped mutable state (ledger, violation log,
    availability cache), so concurrent runs never share them.
    """

    def __init__(self, repository: ScheduleRepository, config: SchedulerConfig, options: ScheduleOptions):
        self.repository = repository
        self.config = config
        self.options = options
        self.start = options.start_date
        self.end = options.end_date

        # Seed the ledger with persisted assignments of every calendar year the window touches
        persisted = repository.list_assignments(
            date_type(self.start.year, 1, 1), date_type(self.end.year, 12, 31)
        )

        # Initialize Helpers
        self.state = SchedulerState(persisted)
        self.availability = AvailabilityResolver(repository)
        self.capacity = CapacityResolver(repository.list_capacity_rules())
        self.site_capacity = SiteCapacityResolver(repository.list_site_capacity_rules())
        self.checker = ConstraintChecker(self.availability, self.capacity, self.site_capacity)
        self.tracker = ViolationTracker()
        self.fallback = FallbackResolver(repository, self.checker)
        self.validator = TeamValidator(repository, self.availability)
        self.former = TeamFormer(repository)
        self.scorer = PreceptorScorer()

        # Lookups
        self._staffing: Dict[OutcomeKey, Staffing] = {}
        self._contexts: Dict[OutcomeKey, PlacementContext] = {}
        self._reasons: Dict[OutcomeKey, str] = {}
        self._held: List[Tuple[RequirementTask, List[Assignment]]] = []

    def run(self, students: List[Student], clerkships: List[Clerkship]) -> SchedulingResult:
        """
        Execute the scheduling pipeline.
        """
        logger.info(
            f"Starting scheduling run: {len(students)} student(s), {len(clerkships)} clerkship(s), "
            f"{self.start.isoformat()} -> {self.end.isoformat()}"
        )

        # 1. Resolve settings up front: invalid configuration aborts before any placement
        units = {c.id: self._resolve_units(c) for c in clerkships}

        # 2. Expand demand in processing order (students in input order, then requirements)
        tasks: List[RequirementTask] = []
        for student in students:
            for clerkship in clerkships:
                for requirement_type, requirement, elective, days, resolved in units[clerkship.id]:
                    task = RequirementTask(
                        student, clerkship, requirement_type, days, resolved, requirement, elective
                    )
                    self.state.outcome_for(
                        student.id, clerkship.id, requirement_type, task.elective_id, days
                    )
                    tasks.append(task)

        # 3. First pass (unfinished anchors hold their days until it ends)
        for task in tasks:
            self._attempt(task, record=True)
        self._release_held()

        # 4. Retry pass: unfinished requirements get another go at whatever capacity is left
        max_retries = self.options.max_retries_per_student
        if max_retries is None:
            max_retries = self.config.max_retries_per_student
        for attempt in range(max_retries):
            pending = [t for t in tasks if self.state.outcomes[t.key].status != RequirementStatus.SATISFIED]
            if not pending:
                break
            before = self._progress()
            logger.info(f"Retry {attempt + 1}/{max_retries}: {len(pending)} unfinished requirement(s)")
            for task in pending:
                self._attempt(task, record=False)
            if self._progress() == before:
                break

        return self._build_result([s.id for s in students])

    # --- Setup ---

    def _resolve_units(self, clerkship: Clerkship) -> List[Tuple]:
        resolved_units = []
        for requirement_type, requirement, elective, days in expand_requirements(clerkship):
            defaults = self.repository.get_global_defaults(requirement_type) or default_settings(self.config)
            resolved = resolve_settings(clerkship, requirement, elective, defaults)
            problems = validate_resolved_settings(resolved.settings)
            if problems:
                raise ValidationError(
                    f"Invalid settings for clerkship '{clerkship.id}' ({requirement_type.value}): "
                    + "; ".join(problems),
                    [f"clerkships.{clerkship.id}.settings"]
                )
            resolved_units.append((requirement_type, requirement, elective, days, resolved))
        return resolved_units

    def _staffing_for(self, task: RequirementTask) -> Staffing:
        if task.key in self._staffing:
            return self._staffing[task.key]

        eligible = self._eligible_preceptors(task)
        staffing = Staffing(primaries=eligible)
        if self.options.enable_team_formation and task.settings.allow_teams:
            staffing = self._form_team(task, eligible)

        if self.options.enable_fallbacks and task.settings.allow_fallbacks:
            staffing.chain = self.fallback.build_chain(
                staffing.primaries, staffing.team, task.clerkship, task.settings,
                home_system=task.student.health_system_id
            )

        self._staffing[task.key] = staffing
        return staffing

    def _eligible_preceptors(self, task: RequirementTask) -> List[Preceptor]:
        """Primary candidates in stable snapshot order (same health system first when preferred)."""
        clerkship, elective = task.clerkship, task.elective
        preceptors = [p for p in self.repository.list_preceptors() if not p.is_global_fallback_only]

        if elective is not None and elective.preceptor_ids:
            wanted = set(elective.preceptor_ids)
            preceptors = [p for p in preceptors if p.id in wanted]
        else:
            preceptors = [p for p in preceptors if p.teaches(clerkship.id)]

        sites = set(self._requirement_sites(task))
        if sites:
            preceptors = [p for p in preceptors if sites & set(p.site_ids)]

        specialty = (elective.specialty if elective is not None else None) or clerkship.specialty
        if specialty:
            preceptors = [p for p in preceptors if p.specialty in (None, specialty)]

        home = task.student.health_system_id
        if home and task.settings.health_system_rule != HealthSystemRule.NO_PREFERENCE:
            preceptors.sort(key=lambda p: p.health_system_id != home)
        return preceptors

    def _form_team(self, task: RequirementTask, eligible: List[Preceptor]) -> Staffing:
        """First valid candidate team wins; every rejected team is recorded."""
        specialty = (task.elective.specialty if task.elective else None) or task.clerkship.specialty
        teams = self.former.candidate_teams(task.clerkship, task.requirement_type, eligible, task.settings)
        home = task.student.health_system_id
        if home and task.settings.health_system_rule != HealthSystemRule.NO_PREFERENCE:
            # Teams with a member in the student's health system go first
            teams.sort(key=lambda t: not self._has_member_in(t, home))
        window = [d for d in iter_days(self.start, self.end) if not self.availability.is_blackout(d)]

        for team in teams:
            result = self.validator.validate_team(
                team.members, rules_for(team, task.settings),
                task.clerkship.id, task.requirement_type, specialty, window
            )
            if result.is_valid:
                for warning in result.warnings:
                    logger.warning(f"Team {team.id}: {warning}")
                primaries = [self.repository.get_preceptor(m.preceptor_id) for m in team.ordered_members()]
                return Staffing(primaries, team, result.requires_approval)

            self._violate(
                task, TEAM_FORMATION, None, None, "; ".join(result.errors),
                {"team_id": team.id, "warnings": result.warnings}
            )

        # Every candidate team rejected -> no primaries (fallbacks may still help)
        if teams:
            return Staffing([])
        return Staffing(eligible)

    def _has_member_in(self, team: PreceptorTeam, health_system_id: str) -> bool:
        for member in team.ordered_members():
            try:
                if self.repository.get_preceptor(member.preceptor_id).health_system_id == health_system_id:
                    return True
            except NotFoundError:
                continue
        return False

    def _context(self, task: RequirementTask) -> PlacementContext:
        if task.key not in self._contexts:
            self._contexts[task.key] = PlacementContext(
                student_id=task.student.id,
                clerkship_id=task.clerkship.id,
                requirement_type=task.requirement_type,
                settings=task.settings,
                start=self.start,
                end=self.end,
                elective_id=task.elective_id,
                reference_system=task.student.health_system_id,
                site_ids=self._requirement_sites(task),
                onboarded_systems=task.student.onboarded_health_system_ids,
            )
        return self._contexts[task.key]

    @staticmethod
    def _requirement_sites(task: RequirementTask) -> List[str]:
        """Elective sites when the elective names any, else the clerkship's (empty = any site)."""
        if task.elective is not None and task.elective.site_ids:
            return list(task.elective.site_ids)
        return list(task.clerkship.site_ids)

    # --- Placement ---

    def _attempt(self, task: RequirementTask, record: bool) -> None:
        """Try to place the task's remaining days. Violations are only logged when record=True."""
        outcome = self.state.outcomes[task.key]
        needed = task.required_days - self._assigned_count(task)
        if needed <= 0:
            self._settle(task, [])
            return
        outcome.status = RequirementStatus.SEARCHING

        staffing = self._staffing_for(task)
        ctx = self._context(task)

        if not staffing.primaries and not staffing.chain:
            if record:
                self._violate(task, NO_ELIGIBLE_PRECEPTOR, None, None, "No eligible preceptor for this requirement")
            self._settle(task, [])
            return

        recorded = self.tracker.get_total_violations()
        strategy = task.settings.assignment_strategy
        if strategy == AssignmentStrategy.BLOCK_BASED:
            placed, failed = self._place_blocks(task, ctx, staffing, needed, record)
        elif strategy == AssignmentStrategy.CONTINUOUS_SINGLE and not task.settings.allow_split_assignments:
            placed, failed = self._place_anchored(task, ctx, staffing, needed, record)
        else:
            rotate = strategy == AssignmentStrategy.DAILY_ROTATION
            placed, failed = self._place_daily(task, ctx, staffing, needed, record, rotate)

        # Ran out of dates without any other recorded cause
        if record and placed < needed and self.tracker.get_total_violations() == recorded:
            self._violate(
                task, PRECEPTOR_AVAILABILITY, None, None,
                f"Not enough available dates: {placed} of {needed} remaining day(s) placed",
                {"window_start": self.start.isoformat(), "window_end": self.end.isoformat()}
            )
        self._settle(task, failed)

    def _place_daily(
        self,
        task: RequirementTask,
        ctx: PlacementContext,
        staffing: Staffing,
        needed: int,
        record: bool,
        rotate: bool
    ) -> Tuple[int, List[date_type]]:
        """Day-by-day placement: sticky (continuous/team strategies) or rotating."""
        placed, failed = 0, []
        previous = self._previous_preceptor(task)
        for day in self._candidate_days(ctx, staffing.primaries + [c.preceptor for c in staffing.chain]):
            if placed >= needed:
                break
            order = self._order(staffing.primaries, previous, day, ctx, rotate)
            assignment, rejections, fallback_tried = self._try_day(task, ctx, staffing, day, order)
            if assignment is not None:
                placed += 1
                if not assignment.is_fallback:
                    previous = assignment.preceptor_id
            else:
                failed.append(day)
                if record:
                    self._record_unmet_day(task, day, rejections, fallback_tried)
        return placed, failed

    def _place_anchored(
        self,
        task: RequirementTask,
        ctx: PlacementContext,
        staffing: Staffing,
        needed: int,
        record: bool
    ) -> Tuple[int, List[date_type]]:
        """
        continuous_single without split assignments: one anchor preceptor for
        every day. An anchor that cannot finish the requirement gives its days
        back: at the end of the first pass (so retries can use the capacity),
        or straight away during a retry.
        """
        anchor_id = self._previous_preceptor(task) or self._choose_anchor(ctx, staffing, needed)
        order = [p for p in staffing.primaries if p.id == anchor_id] if anchor_id else list(staffing.primaries)
        days = self._candidate_days(ctx, order + [c.preceptor for c in staffing.chain])

        made: List[Assignment] = []
        failed: List[date_type] = []
        for day in days:
            if len(made) >= needed:
                break
            assignment, rejections, fallback_tried = self._try_day(task, ctx, staffing, day, order)
            if assignment is not None:
                made.append(assignment)
            else:
                failed.append(day)
                if record:
                    self._record_unmet_day(task, day, rejections, fallback_tried)

        if made and len(made) < needed:
            if record:
                self._violate(
                    task, CONTINUITY_INCOMPLETE, anchor_id, None,
                    f"Anchor preceptor covered only {len(made)} of {needed} day(s); placements released",
                    {"released": len(made)}
                )
                self._held.append((task, made))
                return len(made), failed
            self._drop_anchor(task, made)
            return 0, failed + [a.date for a in made]
        return len(made), failed

    def _drop_anchor(self, task: RequirementTask, made: List[Assignment]) -> None:
        for assignment in made:
            self._release(assignment)
        # Continuity restarts from the student's home system
        self._context(task).reference_system = task.student.health_system_id

    def _release_held(self) -> None:
        for task, made in self._held:
            self._drop_anchor(task, made)
            self._settle(task, [a.date for a in made])
        self._held = []

    def _progress(self) -> int:
        return sum(o.assigned_days for o in self.state.outcomes.values())

    def _choose_anchor(self, ctx: PlacementContext, staffing: Staffing, needed: int) -> Optional[str]:
        """First primary able to cover every remaining day, else the one covering the most."""
        primaries = staffing.primaries
        if self.options.enable_optimization and primaries:
            primaries = self.scorer.rank(primaries, self.start, ctx, self.state)

        best_id, best_count = None, 0
        for preceptor in primaries:
            count = 0
            for day in self._candidate_days(ctx, [preceptor]):
                if self.checker.check_placement(ctx, preceptor, day, self.state) is None:
                    count += 1
                    if count >= needed:
                        break
            if count > best_count:
                best_id, best_count = preceptor.id, count
            if best_count >= needed:
                break
        return best_id

    def _place_blocks(
        self,
        task: RequirementTask,
        ctx: PlacementContext,
        staffing: Staffing,
        needed: int,
        record: bool
    ) -> Tuple[int, List[date_type]]:
        """
        block_based: consecutive candidate days are grouped into blocks of
        block_length_days; each block goes to one preceptor as a whole.
        """
        settings = task.settings
        length = settings.block_length_days
        days = self._candidate_days(ctx, staffing.primaries + [c.preceptor for c in staffing.chain])
        previous = self._previous_preceptor(task)
        block_number = self._next_block_number(task)

        placed, failed = 0, []
        i = 0
        while placed < needed and i < len(days):
            size = min(length, needed - placed)
            window = days[i:i + size]
            if len(window) < length and not settings.allow_partial_blocks:
                if record:
                    self._violate(
                        task, BLOCK_INCOMPLETE, None, days[i],
                        f"Only {len(window)} day(s) left for a {length}-day block and partial blocks are not allowed",
                        {"block_number": block_number, "remaining_days": needed - placed}
                    )
                break

            block = self._place_block(task, ctx, staffing, window, block_number, previous)
            if block:
                placed += len(block)
                i += len(window)
                block_number += 1
                if not block[0].is_fallback:
                    previous = block[0].preceptor_id
                continue

            if settings.allow_split_assignments:
                # Fill the block day by day instead
                made = 0
                for day in window:
                    order = self._order(staffing.primaries, previous, day, ctx, rotate=False)
                    assignment, rejections, fallback_tried = self._try_day(
                        task, ctx, staffing, day, order, block_number
                    )
                    if assignment is not None:
                        made += 1
                        if not assignment.is_fallback:
                            previous = assignment.preceptor_id
                    else:
                        failed.append(day)
                        if record:
                            self._record_unmet_day(task, day, rejections, fallback_tried)
                placed += made
                i += len(window)
                if made:
                    block_number += 1
                continue

            # No single preceptor can take a block starting here: slide one day
            failed.append(days[i])
            if record:
                rejections = self._rejections(ctx, staffing.primaries, days[i], block_number)
                self._record_unmet_day(task, days[i], rejections, bool(staffing.chain))
            i += 1

        return placed, failed

    def _place_block(
        self,
        task: RequirementTask,
        ctx: PlacementContext,
        staffing: Staffing,
        window: List[date_type],
        block_number: int,
        previous: Optional[str]
    ) -> Optional[List[Assignment]]:
        """All-or-nothing placement of one block."""
        keep = previous if task.settings.prefer_continuous_blocks else None
        for preceptor in self._order(staffing.primaries, keep, window[0], ctx, rotate=False):
            sites = []
            for d in window:
                violation, site_id = self.checker.evaluate(ctx, preceptor, d, self.state, block_number)
                if violation is not None:
                    break
                sites.append(site_id)
            else:
                return [
                    self._commit(task, ctx, staffing, preceptor, d, block_number, site_id=site_id)
                    for d, site_id in zip(window, sites)
                ]

        for candidate in staffing.chain:
            choices = [self.fallback.resolve(d, [candidate], self.state, ctx, block_number) for d in window]
            if all(choice is not None for choice in choices):
                logger.info(
                    f"Triggering Fallback: block {block_number} of {task.student.id}/{task.clerkship.id} "
                    f"-> {candidate.preceptor.name} (tier {candidate.tier})"
                )
                return [
                    self._commit(task, ctx, staffing, candidate.preceptor, d, block_number, choice)
                    for d, choice in zip(window, choices)
                ]
        return None

    def _try_day(
        self,
        task: RequirementTask,
        ctx: PlacementContext,
        staffing: Staffing,
        day: date_type,
        order: List[Preceptor],
        block_number: Optional[int] = None
    ) -> Tuple[Optional[Assignment], List[ConstraintViolation], bool]:
        """
        Primaries in order, then the fallback chain.
        Returns (assignment or None, primary rejections, whether fallback was tried).
        """
        rejections = []
        for preceptor in order:
            violation, site_id = self.checker.evaluate(ctx, preceptor, day, self.state, block_number)
            if violation is None:
                assignment = self._commit(task, ctx, staffing, preceptor, day, block_number, site_id=site_id)
                return assignment, rejections, False
            rejections.append(violation)

        if not staffing.chain:
            return None, rejections, False

        choice = self.fallback.resolve(day, staffing.chain, self.state, ctx, block_number)
        if choice is None:
            return None, rejections, True

        logger.info(
            f"Triggering Fallback: {task.student.id}/{task.clerkship.id} on {day.isoformat()} "
            f"-> {choice.candidate.preceptor.name} (tier {choice.candidate.tier})"
        )
        assignment = self._commit(task, ctx, staffing, choice.candidate.preceptor, day, block_number, choice)
        return assignment, rejections, True

    def _commit(
        self,
        task: RequirementTask,
        ctx: PlacementContext,
        staffing: Staffing,
        preceptor: Preceptor,
        day: date_type,
        block_number: Optional[int] = None,
        fallback: Optional[FallbackChoice] = None,
        site_id: Optional[str] = None
    ) -> Assignment:
        pending_reason = None
        if fallback is not None and fallback.requires_approval:
            pending_reason = "Fallback preceptor requires approval"
        elif fallback is None and staffing.requires_approval:
            pending_reason = "Team requires administrative approval"

        if fallback is not None:
            team_id = fallback.candidate.team_id
        else:
            team_id = staffing.team.id if staffing.team else None

        assignment = Assignment(
            id=Assignment.make_id(task.student.id, task.clerkship.id, day, task.elective_id),
            student_id=task.student.id,
            preceptor_id=preceptor.id,
            clerkship_id=task.clerkship.id,
            date=day,
            requirement_type=task.requirement_type,
            elective_id=task.elective_id,
            block_number=block_number,
            site_id=fallback.site_id if fallback is not None else site_id,
            team_id=team_id,
            is_fallback=fallback is not None,
            fallback_tier=fallback.candidate.tier if fallback else None,
            status=AssignmentStatus.PENDING_APPROVAL if pending_reason else AssignmentStatus.SCHEDULED,
        )
        self.state.add_booking(assignment)
        self.scorer.record_booking(assignment)

        if pending_reason:
            intended = staffing.primaries[0].id if fallback is not None and staffing.primaries else preceptor.id
            self.state.pending_approvals.append(PendingApproval(
                assignment_id=assignment.id,
                student_id=assignment.student_id,
                preceptor_id=intended,
                fallback_preceptor_id=preceptor.id if fallback is not None else None,
                team_id=team_id,
                date=day,
                reason=pending_reason,
            ))

        # First primary placement anchors health system continuity
        if fallback is None and ctx.reference_system is None:
            ctx.reference_system = preceptor.health_system_id
        return assignment

    def _release(self, assignment: Assignment) -> None:
        self.state.remove_booking(assignment)
        self.scorer.forget_booking(assignment)

    # --- Helpers ---

    def _candidate_days(self, ctx: PlacementContext, pool: Sequence[Preceptor]) -> List[date_type]:
        """Window dates the student is free on and at least one pool member is available at a usable site."""
        available = set()
        for preceptor in pool:
            # Fallbacks sharing none of the requirement's sites cover from their own
            sites = permitted_sites(preceptor, ctx.site_ids) or permitted_sites(preceptor, [])
            available.update(self.availability.resolve_for_sites(preceptor.id, self.start, self.end, sites))
        return [d for d in sorted(available) if self.checker.check_day(ctx, d, self.state) is None]

    def _order(
        self,
        candidates: List[Preceptor],
        previous_id: Optional[str],
        day: date_type,
        ctx: PlacementContext,
        rotate: bool
    ) -> List[Preceptor]:
        """Previous preceptor first (sticky) or last (rotate); the rest in stable order."""
        others = [p for p in candidates if p.id != previous_id]
        if self.options.enable_optimization:
            others = self.scorer.rank(others, day, ctx, self.state, previous_id)
        previous = [p for p in candidates if p.id == previous_id]
        return others + previous if rotate else previous + others

    def _rejections(
        self,
        ctx: PlacementContext,
        primaries: List[Preceptor],
        day: date_type,
        block_number: Optional[int]
    ) -> List[ConstraintViolation]:
        rejections = []
        for preceptor in primaries:
            violation = self.checker.check_placement(ctx, preceptor, day, self.state, block_number)
            if violation is not None:
                rejections.append(violation)
        return rejections

    def _own_assignments(self, task: RequirementTask) -> List[Assignment]:
        return [a for a in self.state.persisted + self.state.booked_slots if task.owns(a)]

    def _assigned_count(self, task: RequirementTask) -> int:
        return len(self._own_assignments(task))

    def _previous_preceptor(self, task: RequirementTask) -> Optional[str]:
        primaries = [a for a in self._own_assignments(task) if not a.is_fallback]
        if not primaries:
            return None
        return max(primaries, key=lambda a: a.date).preceptor_id

    def _next_block_number(self, task: RequirementTask) -> int:
        numbers = [a.block_number for a in self._own_assignments(task) if a.block_number is not None]
        return max(numbers) + 1 if numbers else 1

    def _violate(
        self,
        task: RequirementTask,
        constraint_name: str,
        preceptor_id: Optional[str],
        day: Optional[date_type],
        reason: str,
        metadata: Optional[dict] = None
    ) -> None:
        self.tracker.record_violation(
            constraint_name,
            CandidateAssignment(
                student_id=task.student.id,
                clerkship_id=task.clerkship.id,
                preceptor_id=preceptor_id,
                date=day,
                requirement_type=task.requirement_type,
                elective_id=task.elective_id,
            ),
            reason,
            metadata,
        )
        self._reasons[task.key] = reason

    def _record_unmet_day(
        self,
        task: RequirementTask,
        day: date_type,
        rejections: List[ConstraintViolation],
        fallback_tried: bool
    ) -> None:
        """One violation per day that could not be placed."""
        if fallback_tried:
            name, reason = FALLBACK_EXHAUSTED, "No primary or fallback preceptor could take this day"
        elif rejections:
            name, reason = rejections[0].constraint_type, rejections[0].reason
        else:
            name, reason = NO_ELIGIBLE_PRECEPTOR, "No eligible preceptor for this day"

        metadata = {
            "rejections": [
                {"preceptor_id": v.preceptor_id, "constraint": v.constraint_type, "reason": v.reason}
                for v in rejections
            ]
        }
        preceptor_id = rejections[0].preceptor_id if rejections else None
        self._violate(task, name, preceptor_id, day, reason, metadata)

    def _settle(self, task: RequirementTask, failed: List[date_type]) -> None:
        """Move the requirement to its terminal state for this pass."""
        outcome = self.state.outcomes[task.key]
        own = self._own_assignments(task)
        taken = {a.date for a in own}

        outcome.assigned_days = len(own)
        outcome.unmet_dates = sorted((set(outcome.unmet_dates) | set(failed)) - taken)
        if outcome.assigned_days >= task.required_days:
            outcome.status = RequirementStatus.SATISFIED
            outcome.unmet_dates = []
        elif outcome.assigned_days > 0:
            outcome.status = RequirementStatus.PARTIALLY_SATISFIED
        else:
            outcome.status = RequirementStatus.UNMET

        logger.debug(
            f"{task.student.id}/{task.clerkship.id}/{task.requirement_type.value}"
            f"{'/' + task.elective_id if task.elective_id else ''}: "
            f"{outcome.status.value} ({outcome.assigned_days}/{task.required_days})"
        )

    def _build_result(self, student_ids: List[str]) -> SchedulingResult:
        unmet = []
        for outcome in self.state.unfinished():
            key = (outcome.student_id, outcome.clerkship_id, outcome.requirement_type, outcome.elective_id)
            unmet.append(UnmetRequirement(
                student_id=outcome.student_id,
                clerkship_id=outcome.clerkship_id,
                requirement_type=outcome.requirement_type,
                elective_id=outcome.elective_id,
                required_days=outcome.required_days,
                assigned_days=outcome.assigned_days,
                unmet_dates=list(outcome.unmet_dates),
                reason=self._reasons.get(key, "Requirement not fully placed"),
            ))
            logger.warning(
                f"Unfinished: {outcome.student_id}/{outcome.clerkship_id}/{outcome.requirement_type.value} "
                f"{outcome.assigned_days}/{outcome.required_days} day(s)"
            )

        statistics = self.state.get_statistics(student_ids, self.tracker.get_total_violations())
        return SchedulingResult(
            success=not unmet,
            assignments=list(self.state.booked_slots),
            unmet_requirements=unmet,
            statistics=statistics,
            violations=self.tracker.export_violations(),
            pending_approvals=list(self.state.pending_approvals),
            outcomes=[o.model_copy(deep=True) for o in self.state.outcomes.values()],
            dry_run=self.options.dry_run,
        )


class SchedulingEngine:
    """
    Main scheduling engine.
    Ingests the repository snapshot (demand + supply), outputs assignments and diagnostics.
    Holds no state between calls: every call builds its own run-scoped state.
    """

    def __init__(self, repository: ScheduleRepository, config: Optional[SchedulerConfig] = None):
        self.repository = repository
        self.config = config or get_config()

    def schedule(
        self,
        student_ids: List[str],
        clerkship_ids: List[str],
        options: Union[ScheduleOptions, dict, None] = None
    ) -> SchedulingResult:
        """
        Place every requirement of every (student, clerkship) pair.
        Raises NotFoundError / ValidationError for structural problems only.
        """
        options = self._coerce_options(options)

        # Phase 1: load (unknown ids abort the run)
        students = [self.repository.get_student(sid) for sid in dict.fromkeys(student_ids)]
        clerkships = [self.repository.get_clerkship(cid) for cid in dict.fromkeys(clerkship_ids)]

        # Phase 2: solve
        result = SchedulingRun(self.repository, self.config, options).run(students, clerkships)

        # Phase 3: commit
        if options.dry_run:
            logger.info(f"Dry run: {len(result.assignments)} assignment(s) not persisted")
        elif result.assignments:
            self.repository.save_assignments(result.assignments)

        stats = result.statistics
        logger.info(
            f"Scheduling complete: {stats.total_assignments} assignment(s), "
            f"{stats.satisfied_requirements}/{stats.total_requirements} requirement(s) satisfied, "
            f"{stats.total_violations} violation(s)"
        )
        return result

    @staticmethod
    def _coerce_options(options) -> ScheduleOptions:
        if isinstance(options, ScheduleOptions):
            return options
        try:
            return ScheduleOptions.model_validate(options or {})
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc

    # --- Editing Workflows ---

    def reassign_to_preceptor(self, assignment_id: str, new_preceptor_id: str, dry_run: bool = False) -> SchedulingResult:
        """
        Move one assignment to another preceptor, re-checking availability and
        capacity for that date only.
        """
        assignment = self.repository.get_assignment(assignment_id)
        preceptor = self.repository.get_preceptor(new_preceptor_id)
        if assignment.preceptor_id == preceptor.id:
            raise ConflictError(f"Assignment '{assignment_id}' is already with preceptor '{new_preceptor_id}'")

        updated = assignment.model_copy(update={
            "preceptor_id": preceptor.id,
            "is_fallback": False,
            "fallback_tier": None,
            "team_id": None,
            "status": AssignmentStatus.SCHEDULED,
        })
        return self._apply_edit([assignment], [updated], dry_run)

    def swap_assignments(self, assignment_id_1: str, assignment_id_2: str, dry_run: bool = False) -> SchedulingResult:
        """
        Exchange the preceptors of two assignments, re-checking both dates.
        """
        if assignment_id_1 == assignment_id_2:
            raise ValidationError("Cannot swap an assignment with itself", ["assignment_id_2"])

        first = self.repository.get_assignment(assignment_id_1)
        second = self.repository.get_assignment(assignment_id_2)
        if first.preceptor_id == second.preceptor_id:
            raise ValidationError(
                "Both assignments already have the same preceptor",
                ["assignment_id_1", "assignment_id_2"]
            )

        def take_over(target: Assignment, source: Assignment) -> Assignment:
            return target.model_copy(update={
                "preceptor_id": source.preceptor_id,
                "is_fallback": source.is_fallback,
                "fallback_tier": source.fallback_tier,
                "team_id": source.team_id,
            })

        return self._apply_edit([first, second], [take_over(first, second), take_over(second, first)], dry_run)

    def _apply_edit(self, originals: List[Assignment], updated: List[Assignment], dry_run: bool) -> SchedulingResult:
        years = [a.date.year for a in originals + updated]
        state = SchedulerState(self.repository.list_assignments(
            date_type(min(years), 1, 1), date_type(max(years), 12, 31)
        ))
        state.release(a.id for a in originals)

        availability = AvailabilityResolver(self.repository)
        checker = ConstraintChecker(
            availability,
            CapacityResolver(self.repository.list_capacity_rules()),
            SiteCapacityResolver(self.repository.list_site_capacity_rules()),
        )
        tracker = ViolationTracker()

        placed: List[Assignment] = []
        for assignment in updated:
            clerkship = self.repository.get_clerkship(assignment.clerkship_id)
            preceptor = self.repository.get_preceptor(assignment.preceptor_id)
            student = self.repository.get_student(assignment.student_id)
            elective = next((e for e in clerkship.electives if e.id == assignment.elective_id), None)
            ctx = PlacementContext(
                student_id=assignment.student_id,
                clerkship_id=clerkship.id,
                requirement_type=assignment.requirement_type,
                settings=self._settings_for(clerkship, assignment),
                start=assignment.date,
                end=assignment.date,
                elective_id=assignment.elective_id,
                site_ids=list(elective.site_ids if elective is not None and elective.site_ids else clerkship.site_ids),
                onboarded_systems=student.onboarded_health_system_ids,
            )
            violation, site_id = checker.evaluate(
                ctx, preceptor, assignment.date, state, assignment.block_number, enforce_continuity=False
            )
            if violation is None:
                assignment = assignment.model_copy(update={"site_id": site_id})
                # Later checks in the same edit see this placement
                state.add_booking(assignment)
            else:
                tracker.record_violation(
                    violation.constraint_type,
                    CandidateAssignment(
                        student_id=assignment.student_id,
                        clerkship_id=assignment.clerkship_id,
                        preceptor_id=assignment.preceptor_id,
                        date=assignment.date,
                        requirement_type=assignment.requirement_type,
                        elective_id=assignment.elective_id,
                    ),
                    violation.reason,
                    {"assignment_id": assignment.id},
                )
            placed.append(assignment)

        success = tracker.get_total_violations() == 0
        if success and not dry_run:
            self.repository.update_assignments(placed)
        logger.info(
            f"Edit of {', '.join(a.id for a in originals)}: "
            f"{'ok' if success else 'rejected'}{' (dry run)' if dry_run else ''}"
        )

        return SchedulingResult(
            success=success,
            assignments=placed,
            statistics=SchedulingStatistics(
                total_assignments=len(placed),
                preceptors_utilized=len({a.preceptor_id for a in placed}),
                total_violations=tracker.get_total_violations(),
            ),
            violations=tracker.export_violations(),
            dry_run=dry_run,
        )

    def _settings_for(self, clerkship: Clerkship, assignment: Assignment) -> SchedulingSettings:
        requirement = clerkship.get_requirement(assignment.requirement_type)
        elective = next((e for e in clerkship.electives if e.id == assignment.elective_id), None)
        defaults = self.repository.get_global_defaults(assignment.requirement_type) or default_settings(self.config)
        return resolve_settings(clerkship, requirement, elective, defaults).settings
