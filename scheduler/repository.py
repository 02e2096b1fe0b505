"""
Data-access layer consumed by the scheduling engine.

The engine only talks to the ScheduleRepository protocol. InMemoryRepository
implements it over a ScheduleSnapshot and is what the CLI and tests use; a
database-backed implementation would slot in behind the same methods.
"""

import json
import logging
from datetime import date as date_type
from typing import Dict, List, Optional, Protocol, Union

from pydantic import ValidationError as PydanticValidationError

from models import (
    Assignment,
    AvailabilityPattern,
    BlackoutDate,
    CapacityRule,
    Clerkship,
    HealthSystem,
    Preceptor,
    PreceptorTeam,
    RequirementType,
    ScheduleSnapshot,
    SchedulingSettings,
    Site,
    SiteCapacityRule,
    Student,
)
from .errors import ConflictError, DataAccessError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ScheduleRepository(Protocol):
    """Everything the engine reads and writes."""

    def get_student(self, student_id: str) -> Student: ...
    def get_clerkship(self, clerkship_id: str) -> Clerkship: ...
    def get_preceptor(self, preceptor_id: str) -> Preceptor: ...
    def list_preceptors(self) -> List[Preceptor]: ...
    def get_site(self, site_id: str) -> Site: ...
    def list_teams(self, clerkship_id: Optional[str] = None) -> List[PreceptorTeam]: ...
    def list_capacity_rules(self, preceptor_id: Optional[str] = None) -> List[CapacityRule]: ...
    def list_site_capacity_rules(self, site_id: Optional[str] = None) -> List[SiteCapacityRule]: ...
    def list_availability_patterns(self, preceptor_id: str) -> List[AvailabilityPattern]: ...
    def list_blackout_dates(self) -> List[BlackoutDate]: ...
    def get_global_defaults(self, requirement_type: RequirementType) -> Optional[SchedulingSettings]: ...
    def list_assignments(self, start: Optional[date_type] = None, end: Optional[date_type] = None) -> List[Assignment]: ...
    def get_assignment(self, assignment_id: str) -> Assignment: ...
    def save_assignments(self, assignments: List[Assignment]) -> None: ...
    def update_assignments(self, assignments: List[Assignment]) -> None: ...


class InMemoryRepository:
    """
    Snapshot-backed repository.
    Lookups raise NotFoundError; duplicate inserts raise ConflictError.
    """

    def __init__(self, snapshot: Optional[ScheduleSnapshot] = None):
        snapshot = snapshot or ScheduleSnapshot()

        # Index entities for O(1) lookup (insertion order is preserved for stable iteration)
        self.health_systems: Dict[str, HealthSystem] = self._index(snapshot.health_systems, "HealthSystem")
        self.sites: Dict[str, Site] = self._index(snapshot.sites, "Site")
        self.students: Dict[str, Student] = self._index(snapshot.students, "Student")
        self.preceptors: Dict[str, Preceptor] = self._index(snapshot.preceptors, "Preceptor")
        self.clerkships: Dict[str, Clerkship] = self._index(snapshot.clerkships, "Clerkship")
        self.teams: Dict[str, PreceptorTeam] = self._index(snapshot.teams, "PreceptorTeam")
        self.capacity_rules: Dict[str, CapacityRule] = self._index(snapshot.capacity_rules, "CapacityRule")
        self.site_capacity_rules: Dict[str, SiteCapacityRule] = self._index(
            snapshot.site_capacity_rules, "SiteCapacityRule"
        )
        self.patterns: Dict[str, AvailabilityPattern] = self._index(snapshot.availability_patterns, "AvailabilityPattern")
        self.blackout_dates: Dict[str, BlackoutDate] = self._index(snapshot.blackout_dates, "BlackoutDate")
        self.assignments: Dict[str, Assignment] = self._index(snapshot.assignments, "Assignment")
        self.global_defaults: Dict[RequirementType, SchedulingSettings] = dict(snapshot.global_defaults)

    @staticmethod
    def _index(items: list, entity: str) -> dict:
        index = {}
        for item in items:
            if item.id in index:
                raise ConflictError(f"Duplicate {entity} id '{item.id}'")
            index[item.id] = item
        return index

    # --- Loading ---

    @classmethod
    def from_dict(cls, data: dict) -> "InMemoryRepository":
        try:
            snapshot = ScheduleSnapshot.model_validate(data)
        except PydanticValidationError as exc:
            raise DataAccessError(f"Malformed snapshot: {ValidationError.from_pydantic(exc)}") from exc
        return cls(snapshot)

    @classmethod
    def from_file(cls, filename: str) -> "InMemoryRepository":
        """Rehydrate a repository from a snapshot JSON file."""
        try:
            with open(filename, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise DataAccessError(f"Cannot read snapshot {filename}: {exc}") from exc

        logger.info(f"Loading snapshot from {filename}...")
        return cls.from_dict(data)

    def to_snapshot(self) -> ScheduleSnapshot:
        return ScheduleSnapshot(
            health_systems=list(self.health_systems.values()),
            sites=list(self.sites.values()),
            students=list(self.students.values()),
            preceptors=list(self.preceptors.values()),
            clerkships=list(self.clerkships.values()),
            teams=list(self.teams.values()),
            capacity_rules=list(self.capacity_rules.values()),
            site_capacity_rules=list(self.site_capacity_rules.values()),
            availability_patterns=list(self.patterns.values()),
            blackout_dates=list(self.blackout_dates.values()),
            assignments=list(self.assignments.values()),
            global_defaults=dict(self.global_defaults),
        )

    def save_to_file(self, filename: str) -> None:
        with open(filename, 'w') as f:
            json.dump(self.to_snapshot().model_dump(mode='json'), f, indent=2)
        logger.info(f"Saved snapshot to {filename}")

    # --- Reads ---

    def get_student(self, student_id: str) -> Student:
        return self._get(self.students, student_id, "Student")

    def get_clerkship(self, clerkship_id: str) -> Clerkship:
        return self._get(self.clerkships, clerkship_id, "Clerkship")

    def get_preceptor(self, preceptor_id: str) -> Preceptor:
        return self._get(self.preceptors, preceptor_id, "Preceptor")

    def list_preceptors(self) -> List[Preceptor]:
        return list(self.preceptors.values())

    def get_site(self, site_id: str) -> Site:
        return self._get(self.sites, site_id, "Site")

    def get_health_system(self, health_system_id: str) -> HealthSystem:
        return self._get(self.health_systems, health_system_id, "HealthSystem")

    def list_teams(self, clerkship_id: Optional[str] = None) -> List[PreceptorTeam]:
        return [t for t in self.teams.values() if clerkship_id is None or t.clerkship_id == clerkship_id]

    def list_capacity_rules(self, preceptor_id: Optional[str] = None) -> List[CapacityRule]:
        return [r for r in self.capacity_rules.values() if preceptor_id is None or r.preceptor_id == preceptor_id]

    def list_site_capacity_rules(self, site_id: Optional[str] = None) -> List[SiteCapacityRule]:
        return [r for r in self.site_capacity_rules.values() if site_id is None or r.site_id == site_id]

    def list_availability_patterns(self, preceptor_id: str) -> List[AvailabilityPattern]:
        return [p for p in self.patterns.values() if p.preceptor_id == preceptor_id]

    def list_blackout_dates(self) -> List[BlackoutDate]:
        return list(self.blackout_dates.values())

    def get_global_defaults(self, requirement_type: RequirementType) -> Optional[SchedulingSettings]:
        return self.global_defaults.get(requirement_type)

    def list_assignments(self, start: Optional[date_type] = None, end: Optional[date_type] = None) -> List[Assignment]:
        return [
            a for a in self.assignments.values()
            if (start is None or a.date >= start) and (end is None or a.date <= end)
        ]

    def get_assignment(self, assignment_id: str) -> Assignment:
        return self._get(self.assignments, assignment_id, "Assignment")

    @staticmethod
    def _get(index: dict, entity_id: str, entity: str):
        item = index.get(entity_id)
        if item is None:
            raise NotFoundError(entity, entity_id)
        return item

    # --- Writes ---

    def save_assignments(self, assignments: List[Assignment]) -> None:
        """Persist new assignments. All-or-nothing on id conflicts."""
        clashes = [a.id for a in assignments if a.id in self.assignments]
        if clashes:
            raise ConflictError(f"Assignments already exist: {', '.join(clashes)}")
        for assignment in assignments:
            self.assignments[assignment.id] = assignment

    def update_assignments(self, assignments: List[Assignment]) -> None:
        for assignment in assignments:
            if assignment.id not in self.assignments:
                raise NotFoundError("Assignment", assignment.id)
        for assignment in assignments:
            self.assignments[assignment.id] = assignment

    def add_preceptor(self, preceptor: Preceptor) -> None:
        if preceptor.id in self.preceptors:
            raise ConflictError(f"Preceptor '{preceptor.id}' already exists")
        self.preceptors[preceptor.id] = preceptor

    def remove_preceptor(self, preceptor_id: str) -> None:
        """Delete a preceptor. Refused while assignments still reference them."""
        self.get_preceptor(preceptor_id)
        dependents = [a.id for a in self.assignments.values() if a.preceptor_id == preceptor_id]
        if dependents:
            raise ConflictError(
                f"Preceptor '{preceptor_id}' has {len(dependents)} assignment(s) and cannot be deleted"
            )
        del self.preceptors[preceptor_id]

    def add_capacity_rule(self, rule: Union[CapacityRule, dict]) -> CapacityRule:
        """Store a capacity rule; raw dicts are validated first."""
        if isinstance(rule, dict):
            try:
                rule = CapacityRule.model_validate(rule)
            except PydanticValidationError as exc:
                raise ValidationError.from_pydantic(exc) from exc

        self.get_preceptor(rule.preceptor_id)
        if rule.id in self.capacity_rules:
            raise ConflictError(f"Capacity rule '{rule.id}' already exists")
        self.capacity_rules[rule.id] = rule
        return rule

    def add_site_capacity_rule(self, rule: Union[SiteCapacityRule, dict]) -> SiteCapacityRule:
        """Store a site capacity rule; raw dicts are validated first."""
        if isinstance(rule, dict):
            try:
                rule = SiteCapacityRule.model_validate(rule)
            except PydanticValidationError as exc:
                raise ValidationError.from_pydantic(exc) from exc

        self.get_site(rule.site_id)
        if rule.id in self.site_capacity_rules:
            raise ConflictError(f"Site capacity rule '{rule.id}' already exists")
        self.site_capacity_rules[rule.id] = rule
        return rule
