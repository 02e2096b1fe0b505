"""
Team Formation & Validation.

Validation is purely advisory: it reports blocking errors and non-blocking
warnings and never mutates anything. The engine decides whether to commit a team.
"""

import logging
from collections import OrderedDict
from datetime import date as date_type
from typing import List, Optional

from models import (
    Clerkship,
    Preceptor,
    PreceptorTeam,
    RequirementType,
    SchedulingSettings,
    TeamMember,
    TeamRules,
    TeamValidationResult,
)
from .availability import AvailabilityResolver
from .errors import NotFoundError
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)


def rules_for(team: PreceptorTeam, settings: SchedulingSettings) -> TeamRules:
    """A configured team's own flags, tightened by the resolved settings."""
    return TeamRules(
        require_same_health_system=team.require_same_health_system or settings.team_require_same_health_system,
        require_same_site=team.require_same_site or settings.team_require_same_site,
        require_same_specialty=team.require_same_specialty or settings.team_require_same_specialty,
        requires_admin_approval=team.requires_admin_approval or settings.team_requires_admin_approval,
        min_members=settings.team_size_min,
        max_members=settings.team_size_max,
    )


class TeamValidator:

    def __init__(self, repository: ScheduleRepository, availability: Optional[AvailabilityResolver] = None):
        self.repository = repository
        self.availability = availability

    def validate_team(
        self,
        members: List[TeamMember],
        rules: TeamRules,
        clerkship_id: Optional[str] = None,
        requirement_type: Optional[RequirementType] = None,
        specialty: Optional[str] = None,
        dates: Optional[List[date_type]] = None
    ) -> TeamValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        # 1. Size
        if not members:
            return TeamValidationResult(
                is_valid=False,
                errors=["Team must have at least one member"],
                requires_approval=rules.requires_admin_approval,
            )
        if rules.min_members is not None and len(members) < rules.min_members:
            errors.append(f"Team has {len(members)} member(s), minimum is {rules.min_members}")
        if rules.max_members is not None and len(members) > rules.max_members:
            errors.append(f"Team has {len(members)} member(s), maximum is {rules.max_members}")

        # 2. Priorities
        priorities = [m.priority for m in members]
        if len(set(priorities)) != len(priorities):
            errors.append("Member priorities must be unique")

        # 3. Members exist
        preceptors: List[Preceptor] = []
        for member in members:
            try:
                preceptors.append(self.repository.get_preceptor(member.preceptor_id))
            except NotFoundError:
                errors.append(f"Preceptor '{member.preceptor_id}' not found")

        if clerkship_id:
            for p in preceptors:
                if not p.teaches(clerkship_id):
                    warnings.append(f"{p.name} is not associated with clerkship '{clerkship_id}'")

        # 4. Continuity
        if rules.require_same_health_system and preceptors:
            systems = {p.health_system_id for p in preceptors if p.health_system_id}
            unknown = [p.name for p in preceptors if not p.health_system_id]
            if len(systems) > 1:
                errors.append(f"Team members span multiple health systems: {', '.join(sorted(systems))}")
            if unknown:
                warnings.append(f"No health system on file for: {', '.join(unknown)}")

        if rules.require_same_site and preceptors:
            shared = set(preceptors[0].site_ids)
            for p in preceptors[1:]:
                shared &= set(p.site_ids)
            if not shared:
                errors.append("Team members do not share a common site")

        if rules.require_same_specialty and preceptors:
            if specialty:
                mismatched = [p.name for p in preceptors if p.specialty != specialty]
                if mismatched:
                    errors.append(f"Specialty mismatch (expected {specialty}): {', '.join(mismatched)}")
            elif len({p.specialty for p in preceptors}) > 1:
                errors.append("Team members have different specialties")

        # 5. Coverage of candidate dates
        if dates and self.availability is not None and preceptors:
            start, end = min(dates), max(dates)
            covered = set()
            for p in preceptors:
                covered.update(self.availability.resolve(p.id, start, end))
            gaps = [d for d in dates if d not in covered]
            if gaps:
                warnings.append(
                    f"No team member available on {len(gaps)} date(s), first {gaps[0].isoformat()}"
                )

        return TeamValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            requires_approval=rules.requires_admin_approval,
        )


class TeamFormer:
    """
    Proposes candidate teams for a requirement: configured teams first
    (declaration order), otherwise auto-formed groupings of eligible preceptors.
    """

    def __init__(self, repository: ScheduleRepository):
        self.repository = repository

    def candidate_teams(
        self,
        clerkship: Clerkship,
        requirement_type: RequirementType,
        eligible: List[Preceptor],
        settings: SchedulingSettings
    ) -> List[PreceptorTeam]:
        configured = [
            t for t in self.repository.list_teams(clerkship.id)
            if t.serves(clerkship.id, requirement_type)
        ]
        if configured:
            return configured
        return self.auto_form(clerkship, requirement_type, eligible, settings)

    def auto_form(
        self,
        clerkship: Clerkship,
        requirement_type: RequirementType,
        eligible: List[Preceptor],
        settings: SchedulingSettings
    ) -> List[PreceptorTeam]:
        groups: "OrderedDict[Optional[str], List[Preceptor]]" = OrderedDict()
        for p in eligible:
            key = p.health_system_id if settings.team_require_same_health_system else None
            groups.setdefault(key, []).append(p)

        teams = []
        size = settings.team_size_max or max((len(g) for g in groups.values()), default=0)
        for group in groups.values():
            for offset in range(0, len(group), size or 1):
                chunk = group[offset:offset + size]
                if len(chunk) < settings.team_size_min:
                    continue
                number = len(teams) + 1
                teams.append(PreceptorTeam(
                    id=f"auto-{clerkship.id}-{requirement_type.value}-{number}",
                    name=f"{clerkship.name} team {number}",
                    clerkship_id=clerkship.id,
                    requirement_type=requirement_type,
                    members=[
                        TeamMember(preceptor_id=p.id, priority=i + 1)
                        for i, p in enumerate(chunk)
                    ],
                    require_same_health_system=settings.team_require_same_health_system,
                    require_same_site=settings.team_require_same_site,
                    require_same_specialty=settings.team_require_same_specialty,
                    requires_admin_approval=settings.team_requires_admin_approval,
                ))
        logger.debug(f"Auto-formed {len(teams)} team(s) for {clerkship.id}/{requirement_type.value}")
        return teams
