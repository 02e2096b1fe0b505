"""
Violation Tracking.

An append-only log of every constraint breach or shortfall met during a run.
Aggregates are recomputed from the live log on every call and never cached.
One tracker belongs to one run; do not share it across runs.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from models import CandidateAssignment, Violation, ViolationStats

logger = logging.getLogger(__name__)


def group_by_constraint(violations: List[Violation]) -> Dict[str, ViolationStats]:
    """
    Group violations by constraint name, in first-seen order.
    """
    stats: Dict[str, ViolationStats] = {}
    for violation in violations:
        entry = stats.get(violation.constraint_name)
        if entry is None:
            entry = ViolationStats(constraint_name=violation.constraint_name, count=0, violations=[])
            stats[violation.constraint_name] = entry

        entry.count += 1
        entry.violations.append(violation)
        entry.affected_students.add(violation.assignment.student_id)
        if violation.assignment.preceptor_id:
            entry.affected_preceptors.add(violation.assignment.preceptor_id)
        if violation.assignment.date:
            entry.affected_dates.add(violation.assignment.date)
    return stats


class ViolationTracker:

    def __init__(self):
        self._violations: List[Violation] = []

    def record_violation(
        self,
        constraint_name: str,
        assignment: CandidateAssignment,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Violation:
        """Append a timestamped entry. Never deduplicates."""
        violation = Violation(
            constraint_name=constraint_name,
            assignment=assignment.model_copy(),
            reason=reason,
            metadata=dict(metadata or {}),
            timestamp=datetime.now(),
        )
        self._violations.append(violation)
        logger.debug(f"Violation [{constraint_name}] {assignment.student_id}: {reason}")
        return violation

    def get_stats_by_constraint(self) -> Dict[str, ViolationStats]:
        return group_by_constraint(self._violations)

    def get_top_violations(self, n: int = 10) -> List[Tuple[str, int]]:
        """(constraint name, count) by descending count; ties keep first-seen order."""
        stats = self.get_stats_by_constraint()
        ranked = sorted(stats.values(), key=lambda s: s.count, reverse=True)
        return [(s.constraint_name, s.count) for s in ranked[:max(n, 0)]]

    def get_total_violations(self) -> int:
        return len(self._violations)

    def export_violations(self) -> List[Violation]:
        """Independent copy: later recordings or clear() do not alter it."""
        return [v.model_copy(deep=True) for v in self._violations]

    def clear(self) -> None:
        self._violations = []
