"""
Schedule data models for the Clerkship Scheduler.

This module defines the 'Output' of the scheduling engine:
day-level assignments, the violations met while producing them, and the
aggregated run result.
"""

import uuid
from typing import Any, Dict, List, Optional, Set
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_validator
from datetime import date as date_type, datetime

from .clerkship import RequirementType

# Namespace for deterministic assignment ids (identical runs -> identical ids)
ASSIGNMENT_NAMESPACE = uuid.UUID("6f1c1f8e-3b7a-4d2e-9a51-2c0d7b9e4f10")


class AssignmentStatus(str, Enum):
    """Status of a produced assignment."""
    SCHEDULED = "scheduled"
    PENDING_APPROVAL = "pending_approval"


class RequirementStatus(str, Enum):
    """Per (student, requirement) state machine."""
    PENDING = "pending"
    SEARCHING = "searching"
    SATISFIED = "satisfied"
    PARTIALLY_SATISFIED = "partially_satisfied"
    UNMET = "unmet"


class Assignment(BaseModel):
    """
    One student with one preceptor on one day.
    The unit of output.
    """

    # --- Core Scheduling Data ---
    id: str = Field(description="Deterministic identifier")
    student_id: str
    preceptor_id: str
    clerkship_id: str
    date: date_type = Field(description="Calendar date")
    requirement_type: RequirementType = Field(default=RequirementType.OUTPATIENT)
    elective_id: Optional[str] = Field(default=None)

    # --- Placement Context ---
    site_id: Optional[str] = Field(default=None, description="Site the day is taught at")
    block_number: Optional[int] = Field(default=None, ge=1, description="Block index (block_based only)")
    team_id: Optional[str] = Field(default=None, description="Team the preceptor was drawn from")

    # --- Resilience Tracking ---
    is_fallback: bool = Field(
        default=False,
        description="True if placed through the fallback chain"
    )
    fallback_tier: Optional[int] = Field(
        default=None,
        description="1 = team fallback, 2 = same-system global, 3 = cross-system global"
    )

    status: AssignmentStatus = Field(default=AssignmentStatus.SCHEDULED)

    @staticmethod
    def make_id(student_id: str, clerkship_id: str, day: date_type, elective_id: Optional[str] = None) -> str:
        key = f"{student_id}|{clerkship_id}|{elective_id or ''}|{day.isoformat()}"
        return str(uuid.uuid5(ASSIGNMENT_NAMESPACE, key))

    @property
    def is_pending(self) -> bool:
        return self.status == AssignmentStatus.PENDING_APPROVAL

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "0b7e3a52-5f1c-5b39-8d4e-6a9d4c1b2f77",
            "student_id": "stu_001",
            "preceptor_id": "prec_smith",
            "clerkship_id": "clk_fm",
            "date": "2025-01-15",
            "site_id": "site_valley_general",
            "requirement_type": "outpatient",
            "elective_id": None,
            "block_number": 1,
            "team_id": "team_fm_valley",
            "is_fallback": False,
            "status": "scheduled"
        }
    })


class CandidateAssignment(BaseModel):
    """The (possibly incomplete) placement a violation refers to."""
    student_id: str
    clerkship_id: str
    preceptor_id: Optional[str] = None
    date: Optional[date_type] = None
    requirement_type: Optional[RequirementType] = None
    elective_id: Optional[str] = None


class Violation(BaseModel):
    """Append-only record of a breach or shortfall. Never mutated after creation."""
    constraint_name: str = Field(description="e.g. 'preceptor-capacity'")
    assignment: CandidateAssignment
    reason: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)


class ViolationStats(BaseModel):
    """Aggregate for one constraint name."""
    constraint_name: str
    count: int
    violations: List[Violation]
    affected_students: Set[str] = Field(default_factory=set)
    affected_preceptors: Set[str] = Field(default_factory=set)
    affected_dates: Set[date_type] = Field(default_factory=set)


class UnmetRequirement(BaseModel):
    """A requirement that did not reach its required days."""
    student_id: str
    clerkship_id: str
    requirement_type: RequirementType
    elective_id: Optional[str] = None
    required_days: int
    assigned_days: int
    unmet_dates: List[date_type] = Field(default_factory=list, description="Days tried with no placement")
    reason: str = ""

    @property
    def missing_days(self) -> int:
        return self.required_days - self.assigned_days


class PendingApproval(BaseModel):
    """An assignment produced but awaiting human sign-off."""
    assignment_id: str
    student_id: str
    preceptor_id: Optional[str] = Field(default=None, description="Intended primary preceptor")
    fallback_preceptor_id: Optional[str] = Field(default=None, description="Preceptor actually assigned via fallback")
    team_id: Optional[str] = None
    date: date_type
    reason: str


class RequirementOutcome(BaseModel):
    """Final state of one (student, requirement) pair."""
    student_id: str
    clerkship_id: str
    requirement_type: RequirementType
    elective_id: Optional[str] = None
    required_days: int
    assigned_days: int = 0
    status: RequirementStatus = RequirementStatus.PENDING
    unmet_dates: List[date_type] = Field(default_factory=list)


class SchedulingStatistics(BaseModel):
    total_students: int = 0
    total_requirements: int = 0
    satisfied_requirements: int = 0
    partially_satisfied_requirements: int = 0
    unmet_requirements: int = 0
    fully_scheduled_students: int = 0
    partially_scheduled_students: int = 0
    unscheduled_students: int = 0
    total_assignments: int = 0
    fallback_assignments: int = 0
    pending_approvals: int = 0
    preceptors_utilized: int = 0
    average_assignments_per_preceptor: float = 0.0
    completion_rate: float = Field(default=0.0, description="Percent of requirements satisfied")
    total_violations: int = 0


class SchedulingResult(BaseModel):
    """Everything a run (or an edit) produces."""
    success: bool
    assignments: List[Assignment] = Field(default_factory=list)
    unmet_requirements: List[UnmetRequirement] = Field(default_factory=list)
    statistics: SchedulingStatistics = Field(default_factory=SchedulingStatistics)
    violations: List[Violation] = Field(default_factory=list)
    pending_approvals: List[PendingApproval] = Field(default_factory=list)
    outcomes: List[RequirementOutcome] = Field(default_factory=list)
    dry_run: bool = False


class ScheduleOptions(BaseModel):
    """Caller-supplied run options."""
    start_date: date_type
    end_date: date_type
    enable_team_formation: bool = False
    enable_fallbacks: bool = False
    enable_optimization: bool = False
    max_retries_per_student: Optional[int] = Field(
        default=None,
        ge=0,
        description="If None, taken from the scheduler configuration"
    )
    dry_run: bool = False

    @model_validator(mode='after')
    def validate_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self
