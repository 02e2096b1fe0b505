"""
Heuristic Scoring for candidate preceptors.

Only consulted when a run enables optimization. Unlike hard constraints
(binary yes/no), this provides a gradient (0.0 - 100.0) used to re-rank
equally eligible preceptors. Ranking is stable: equal scores keep input order.
"""

from datetime import date as date_type
from typing import Dict, List, Optional
from collections import defaultdict

from models import Assignment, Preceptor
from .constraints import PlacementContext
from .state import SchedulerState


class PreceptorScorer:
    """
    Evaluates candidate preceptors on soft preferences (continuity, load, health system).
    """

    def __init__(self):
        self.run_counts: Dict[str, int] = defaultdict(int)

    def calculate_score(
        self,
        preceptor: Preceptor,
        day: date_type,
        ctx: PlacementContext,
        ledger: SchedulerState,
        previous_id: Optional[str] = None
    ) -> float:
        """
        Master scoring function. Returns 0-100.
        """
        score = 50.0  # Base score

        # 1. Continuity (+20): same preceptor as the student's previous day
        if previous_id and preceptor.id == previous_id:
            score += 20.0

        # 2. Health system match (+15)
        if ctx.reference_system and preceptor.health_system_id == ctx.reference_system:
            score += 15.0

        # 3. Load balance (+10 .. -15): spread students across preceptors
        score += self._score_load(preceptor, day, ledger)

        # Clamp result
        return max(0.0, min(100.0, score))

    def _score_load(self, preceptor: Preceptor, day: date_type, ledger: SchedulerState) -> float:
        on_day = ledger.count_on_day(preceptor.id, day)
        run_total = self.run_counts[preceptor.id]
        if on_day == 0 and run_total == 0:
            return 10.0
        return max(-15.0, 5.0 - 5.0 * on_day - 0.5 * run_total)

    def rank(
        self,
        candidates: List[Preceptor],
        day: date_type,
        ctx: PlacementContext,
        ledger: SchedulerState,
        previous_id: Optional[str] = None
    ) -> List[Preceptor]:
        scored = [(self.calculate_score(p, day, ctx, ledger, previous_id), p) for p in candidates]
        # sorted() is stable, so ties keep the incoming order
        return [p for _, p in sorted(scored, key=lambda x: x[0], reverse=True)]

    def record_booking(self, assignment: Assignment) -> None:
        """Update internal state after a successful booking."""
        self.run_counts[assignment.preceptor_id] += 1

    def forget_booking(self, assignment: Assignment) -> None:
        self.run_counts[assignment.preceptor_id] = max(0, self.run_counts[assignment.preceptor_id] - 1)
