"""
Fallback Chain Resolution.

When every primary preceptor is out of capacity or unavailable on a date, the
chain is walked in order:
1. the team's fallback-only members, by ascending priority   (tier 1)
2. global fallback-only preceptors in a compatible system/site (tier 2)
3. other global fallback-only preceptors, only with
   fallback_allow_cross_system                                (tier 3)

Exhaustion is not an error: resolve() returns None and the day stays unmet.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date as date_type
from typing import List, Optional, Set

from models import Clerkship, Preceptor, PreceptorTeam, SchedulingSettings
from .constraints import ConstraintChecker, PlacementContext
from .errors import NotFoundError
from .repository import ScheduleRepository
from .state import SchedulerState

logger = logging.getLogger(__name__)

TIER_TEAM = 1
TIER_SAME_SYSTEM = 2
TIER_CROSS_SYSTEM = 3


@dataclass
class FallbackCandidate:
    preceptor: Preceptor
    tier: int
    team_id: Optional[str] = None


@dataclass
class FallbackChoice:
    candidate: FallbackCandidate
    requires_approval: bool
    site_id: Optional[str] = None


class FallbackResolver:

    def __init__(self, repository: ScheduleRepository, checker: ConstraintChecker):
        self.repository = repository
        self.checker = checker

    def build_chain(
        self,
        primaries: List[Preceptor],
        team: Optional[PreceptorTeam],
        clerkship: Clerkship,
        settings: SchedulingSettings,
        home_system: Optional[str] = None,
        excluded: Optional[Set[str]] = None
    ) -> List[FallbackCandidate]:
        """Ordered fallback candidates, never repeating a primary."""
        seen = set(excluded or ()) | {p.id for p in primaries}
        chain: List[FallbackCandidate] = []

        # (a) Team-level fallbacks
        if team is not None:
            for member in team.ordered_members(fallback_only=True):
                if member.preceptor_id in seen:
                    continue
                try:
                    preceptor = self.repository.get_preceptor(member.preceptor_id)
                except NotFoundError:
                    logger.warning(f"Fallback member {member.preceptor_id} of team {team.id} not found.")
                    continue
                chain.append(FallbackCandidate(preceptor, TIER_TEAM, team.id))
                seen.add(preceptor.id)

        # (b) Global fallbacks, compatible ones first
        systems = {p.health_system_id for p in primaries if p.health_system_id}
        if home_system:
            systems.add(home_system)
        sites = set(clerkship.site_ids)
        for p in primaries:
            sites.update(p.site_ids)

        same_system, cross_system = [], []
        for preceptor in self.repository.list_preceptors():
            if not preceptor.is_global_fallback_only or preceptor.id in seen:
                continue
            if not preceptor.teaches(clerkship.id):
                continue
            compatible = (preceptor.health_system_id in systems) or bool(sites & set(preceptor.site_ids))
            if compatible:
                same_system.append(FallbackCandidate(preceptor, TIER_SAME_SYSTEM))
            elif settings.fallback_allow_cross_system:
                cross_system.append(FallbackCandidate(preceptor, TIER_CROSS_SYSTEM))

        return chain + same_system + cross_system

    def resolve(
        self,
        day: date_type,
        chain: List[FallbackCandidate],
        ledger: SchedulerState,
        ctx: PlacementContext,
        block_number: Optional[int] = None
    ) -> Optional[FallbackChoice]:
        """
        First candidate that passes every placement check on the date, or None.
        A candidate sharing none of the requirement's sites covers from its own.
        """
        for candidate in chain:
            preceptor = candidate.preceptor
            scoped = ctx
            if ctx.site_ids and not set(ctx.site_ids) & set(preceptor.site_ids):
                scoped = replace(ctx, site_ids=[])
            violation, site_id = self.checker.evaluate(
                scoped, preceptor, day, ledger, block_number, enforce_continuity=False
            )
            if violation is None:
                return FallbackChoice(candidate, ctx.settings.fallback_requires_approval, site_id)
        return None
