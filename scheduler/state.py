"""
Scheduler State Management.

This module acts as the 'Memory' of a run. It tracks:
1. Bookings made by this run and persisted bookings that still consume capacity.
2. Per-(student, requirement) outcomes.
3. Pending approvals and the statistics built on top of them.

The state doubles as the capacity ledger: every placement decision reads it,
so a later placement always sees the capacity consumed by an earlier one.
"""

from datetime import date as date_type
from typing import Dict, Iterable, List, Optional, Set, Tuple
from collections import defaultdict

from models import (
    Assignment,
    PendingApproval,
    RequirementOutcome,
    RequirementStatus,
    RequirementType,
    SchedulingStatistics,
)

OutcomeKey = Tuple[str, str, RequirementType, Optional[str]]


def _students_in_year(bookings: List[Assignment], year: int) -> Set[str]:
    return {a.student_id for a in bookings if a.date.year == year}


def _students_in_block(bookings: List[Assignment], clerkship_id: str, block_number: int, year: int) -> Set[str]:
    return {
        a.student_id for a in bookings
        if a.clerkship_id == clerkship_id and a.block_number == block_number and a.date.year == year
    }


def _blocks_in_year(bookings: List[Assignment], year: int) -> Set[Tuple[str, str, int]]:
    return {(a.student_id, a.clerkship_id, a.block_number) for a in bookings if a.block_number is not None and a.date.year == year}


class SchedulerState:
    """
    Maintains the mutable state of the scheduler during execution.
    Tracks bookings, capacity consumption and requirement outcomes.
    """

    def __init__(self, persisted: Optional[Iterable[Assignment]] = None):
        """Initialize state, seeding the ledger with already-persisted assignments."""
        # The Master Schedule (this run only)
        self.booked_slots: List[Assignment] = []
        self.persisted: List[Assignment] = []

        # Ledger Indices (for O(1) capacity checking)
        self.preceptor_day: Dict[Tuple[str, date_type], List[Assignment]] = defaultdict(list)
        self.preceptor_bookings: Dict[str, List[Assignment]] = defaultdict(list)
        self.site_bookings: Dict[str, List[Assignment]] = defaultdict(list)
        self.student_days: Dict[str, Set[date_type]] = defaultdict(set)

        # Outcome Tracking (insertion order = processing order)
        self.outcomes: Dict[OutcomeKey, RequirementOutcome] = {}
        self.pending_approvals: List[PendingApproval] = []

        for assignment in persisted or []:
            self.persisted.append(assignment)
            self._index(assignment)

    def _index(self, assignment: Assignment) -> None:
        self.preceptor_day[(assignment.preceptor_id, assignment.date)].append(assignment)
        self.preceptor_bookings[assignment.preceptor_id].append(assignment)
        if assignment.site_id:
            self.site_bookings[assignment.site_id].append(assignment)
        self.student_days[assignment.student_id].add(assignment.date)

    def _unindex(self, assignment: Assignment) -> None:
        day_list = self.preceptor_day[(assignment.preceptor_id, assignment.date)]
        day_list[:] = [a for a in day_list if a.id != assignment.id]
        bookings = self.preceptor_bookings[assignment.preceptor_id]
        bookings[:] = [a for a in bookings if a.id != assignment.id]
        if assignment.site_id:
            at_site = self.site_bookings[assignment.site_id]
            at_site[:] = [a for a in at_site if a.id != assignment.id]
        self.student_days[assignment.student_id].discard(assignment.date)

    def add_booking(self, assignment: Assignment) -> None:
        """Commit a placement to the run. Updates every ledger index."""
        self.booked_slots.append(assignment)
        self._index(assignment)

    def remove_booking(self, assignment: Assignment) -> None:
        """Roll back a tentative placement made by this run."""
        self.booked_slots = [a for a in self.booked_slots if a.id != assignment.id]
        self.pending_approvals = [p for p in self.pending_approvals if p.assignment_id != assignment.id]
        self._unindex(assignment)

    def release(self, assignment_ids: Iterable[str]) -> None:
        """Stop counting persisted assignments (used while they are being edited)."""
        ids = set(assignment_ids)
        for assignment in [a for a in self.persisted if a.id in ids]:
            self._unindex(assignment)
        self.persisted = [a for a in self.persisted if a.id not in ids]

    # --- Query Methods (Used by capacity.py and constraints.py) ---

    def count_on_day(self, preceptor_id: str, day: date_type) -> int:
        return len(self.preceptor_day.get((preceptor_id, day), []))

    def students_in_year(self, preceptor_id: str, year: int) -> Set[str]:
        return _students_in_year(self.preceptor_bookings.get(preceptor_id, []), year)

    def students_in_block(self, preceptor_id: str, clerkship_id: str, block_number: int, year: int) -> Set[str]:
        return _students_in_block(self.preceptor_bookings.get(preceptor_id, []), clerkship_id, block_number, year)

    def blocks_in_year(self, preceptor_id: str, year: int) -> Set[Tuple[str, str, int]]:
        return _blocks_in_year(self.preceptor_bookings.get(preceptor_id, []), year)

    # Site-wide counts (assignments without a site never count)

    def site_count_on_day(self, site_id: str, day: date_type) -> int:
        return sum(1 for a in self.site_bookings.get(site_id, []) if a.date == day)

    def site_students_in_year(self, site_id: str, year: int) -> Set[str]:
        return _students_in_year(self.site_bookings.get(site_id, []), year)

    def site_students_in_block(self, site_id: str, clerkship_id: str, block_number: int, year: int) -> Set[str]:
        return _students_in_block(self.site_bookings.get(site_id, []), clerkship_id, block_number, year)

    def site_blocks_in_year(self, site_id: str, year: int) -> Set[Tuple[str, str, int]]:
        return _blocks_in_year(self.site_bookings.get(site_id, []), year)

    def is_student_booked(self, student_id: str, day: date_type) -> bool:
        return day in self.student_days.get(student_id, set())

    # --- Outcome Tracking ---

    def outcome_for(
        self,
        student_id: str,
        clerkship_id: str,
        requirement_type: RequirementType,
        elective_id: Optional[str],
        required_days: int
    ) -> RequirementOutcome:
        key = (student_id, clerkship_id, requirement_type, elective_id)
        if key not in self.outcomes:
            self.outcomes[key] = RequirementOutcome(
                student_id=student_id,
                clerkship_id=clerkship_id,
                requirement_type=requirement_type,
                elective_id=elective_id,
                required_days=required_days,
            )
        return self.outcomes[key]

    def unfinished(self) -> List[RequirementOutcome]:
        return [o for o in self.outcomes.values() if o.status != RequirementStatus.SATISFIED]

    # --- Reporting Methods (Used by the result builder) ---

    def get_statistics(self, student_ids: List[str], total_violations: int = 0) -> SchedulingStatistics:
        """
        Aggregate the run into the statistics block of the result.
        """
        outcomes = list(self.outcomes.values())
        by_status: Dict[RequirementStatus, int] = defaultdict(int)
        for outcome in outcomes:
            by_status[outcome.status] += 1

        # Per-student rollup
        fully = partially = unscheduled = 0
        for student_id in student_ids:
            own = [o for o in outcomes if o.student_id == student_id]
            if all(o.status == RequirementStatus.SATISFIED for o in own):
                fully += 1
            elif all(o.assigned_days == 0 for o in own):
                unscheduled += 1
            else:
                partially += 1

        preceptor_counts: Dict[str, int] = defaultdict(int)
        for assignment in self.booked_slots:
            preceptor_counts[assignment.preceptor_id] += 1

        total_assignments = len(self.booked_slots)
        satisfied = by_status[RequirementStatus.SATISFIED]
        completion = (satisfied / len(outcomes) * 100) if outcomes else 100.0
        average = (total_assignments / len(preceptor_counts)) if preceptor_counts else 0.0

        return SchedulingStatistics(
            total_students=len(student_ids),
            total_requirements=len(outcomes),
            satisfied_requirements=satisfied,
            partially_satisfied_requirements=by_status[RequirementStatus.PARTIALLY_SATISFIED],
            unmet_requirements=by_status[RequirementStatus.UNMET],
            fully_scheduled_students=fully,
            partially_scheduled_students=partially,
            unscheduled_students=unscheduled,
            total_assignments=total_assignments,
            fallback_assignments=sum(1 for a in self.booked_slots if a.is_fallback),
            pending_approvals=len(self.pending_approvals),
            preceptors_utilized=len(preceptor_counts),
            average_assignments_per_preceptor=round(average, 2),
            completion_rate=round(completion, 1),
            total_violations=total_violations,
        )

