"""
Clerkship data models for the Clerkship Scheduler.

This module defines the 'Demand' side of the scheduler:
1. Clerkships (rotations with a required-days total)
2. Requirements (typed quantities of days, with their own settings overrides)
3. Electives (named sub-requirements with a two-mode override)
4. Settings (the value structs cascaded by the override resolver)
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class RequirementType(str, Enum):
    """Kinds of clerkship days a student must complete."""
    INPATIENT = "inpatient"
    OUTPATIENT = "outpatient"
    ELECTIVE = "elective"


class AssignmentStrategy(str, Enum):
    """How required days are distributed across preceptors."""
    CONTINUOUS_SINGLE = "continuous_single"  # One preceptor for every day
    CONTINUOUS_TEAM = "continuous_team"
    TEAM_CONTINUITY = "team_continuity"
    BLOCK_BASED = "block_based"              # Fixed-length blocks, one preceptor per block
    DAILY_ROTATION = "daily_rotation"


class HealthSystemRule(str, Enum):
    """Continuity policy across health systems."""
    ENFORCE_SAME_SYSTEM = "enforce_same_system"
    PREFER_SAME_SYSTEM = "prefer_same_system"
    NO_PREFERENCE = "no_preference"


class OverrideMode(str, Enum):
    """Inheritance strategy of a requirement's settings layer."""
    INHERIT = "inherit"
    OVERRIDE_FIELDS = "override_fields"
    OVERRIDE_SECTION = "override_section"


class ElectiveOverrideMode(str, Enum):
    """Inheritance strategy of an elective's settings layer."""
    INHERIT = "inherit"
    OVERRIDE = "override"


class SchedulingSettings(BaseModel):
    """
    Fully resolved scheduling settings.
    Every field has a concrete value; this is what the engine consumes.
    """

    # --- Strategy ---
    assignment_strategy: AssignmentStrategy = Field(default=AssignmentStrategy.CONTINUOUS_SINGLE)
    health_system_rule: HealthSystemRule = Field(default=HealthSystemRule.PREFER_SAME_SYSTEM)
    block_length_days: Optional[int] = Field(default=None, ge=1, description="Days per block (block_based)")
    allow_partial_blocks: bool = Field(default=False, description="Allow a short final block")
    prefer_continuous_blocks: bool = Field(default=True, description="Keep the same preceptor across blocks")
    allow_split_assignments: bool = Field(
        default=False,
        description="Allow switching preceptors mid-requirement"
    )

    # --- Capacity Defaults (used when no capacity rule matches) ---
    max_students_per_day: int = Field(default=2, ge=1)
    max_students_per_year: int = Field(default=50, ge=1)
    max_students_per_block: Optional[int] = Field(default=None, ge=1)
    max_blocks_per_year: Optional[int] = Field(default=None, ge=1)

    # --- Teams ---
    allow_teams: bool = Field(default=False)
    team_size_min: int = Field(default=1, ge=1)
    team_size_max: Optional[int] = Field(default=None, ge=1)
    team_require_same_health_system: bool = Field(default=False)
    team_require_same_site: bool = Field(default=False)
    team_require_same_specialty: bool = Field(default=False)
    team_requires_admin_approval: bool = Field(default=False)

    # --- Fallbacks ---
    allow_fallbacks: bool = Field(default=True)
    fallback_requires_approval: bool = Field(default=False)
    fallback_allow_cross_system: bool = Field(default=False)


class SettingsOverride(BaseModel):
    """
    A partial settings layer.
    Unset (None) fields defer to the parent layer.
    """
    assignment_strategy: Optional[AssignmentStrategy] = None
    health_system_rule: Optional[HealthSystemRule] = None
    block_length_days: Optional[int] = Field(default=None, ge=1)
    allow_partial_blocks: Optional[bool] = None
    prefer_continuous_blocks: Optional[bool] = None
    allow_split_assignments: Optional[bool] = None

    max_students_per_day: Optional[int] = Field(default=None, ge=1)
    max_students_per_year: Optional[int] = Field(default=None, ge=1)
    max_students_per_block: Optional[int] = Field(default=None, ge=1)
    max_blocks_per_year: Optional[int] = Field(default=None, ge=1)

    allow_teams: Optional[bool] = None
    team_size_min: Optional[int] = Field(default=None, ge=1)
    team_size_max: Optional[int] = Field(default=None, ge=1)
    team_require_same_health_system: Optional[bool] = None
    team_require_same_site: Optional[bool] = None
    team_require_same_specialty: Optional[bool] = None
    team_requires_admin_approval: Optional[bool] = None

    allow_fallbacks: Optional[bool] = None
    fallback_requires_approval: Optional[bool] = None
    fallback_allow_cross_system: Optional[bool] = None

    def specified(self) -> dict:
        """Only the fields this layer actually sets."""
        return self.model_dump(exclude_none=True)


class Requirement(BaseModel):
    """A typed quantity of days for a clerkship, with its own settings layer."""
    requirement_type: RequirementType
    required_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="If None, derived from the clerkship's inpatient/outpatient split"
    )
    override_mode: OverrideMode = Field(default=OverrideMode.INHERIT)
    overrides: SettingsOverride = Field(default_factory=SettingsOverride)

    @model_validator(mode='after')
    def validate_section(self):
        if self.override_mode == OverrideMode.OVERRIDE_SECTION:
            missing = [
                name for name in ("assignment_strategy", "health_system_rule")
                if getattr(self.overrides, name) is None
            ]
            if missing:
                raise ValueError(f"override_section requires {', '.join(missing)}")
        return self


class Elective(BaseModel):
    """A named sub-requirement linked directly to a clerkship."""
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1)
    minimum_days: int = Field(ge=1, description="Days the student must complete")
    is_required: bool = Field(default=True, description="Optional electives are not scheduled")
    specialty: Optional[str] = Field(default=None)
    site_ids: List[str] = Field(default_factory=list, description="Restrict to these sites")
    preceptor_ids: List[str] = Field(default_factory=list, description="Restrict to these preceptors")
    override_mode: ElectiveOverrideMode = Field(default=ElectiveOverrideMode.INHERIT)
    overrides: SettingsOverride = Field(default_factory=SettingsOverride)


class Clerkship(BaseModel):
    """
    A rotation definition.
    Owns its requirements and electives; settings is the clerkship-level override layer.
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1, description="e.g. 'Family Medicine'")
    specialty: Optional[str] = Field(default=None)
    clerkship_type: RequirementType = Field(default=RequirementType.OUTPATIENT)

    required_days: int = Field(ge=1, description="Total days required")
    inpatient_days: Optional[int] = Field(default=None, ge=0)
    outpatient_days: Optional[int] = Field(default=None, ge=0)

    site_ids: List[str] = Field(default_factory=list, description="Sites where this rotation runs")
    settings: SettingsOverride = Field(default_factory=SettingsOverride)
    requirements: List[Requirement] = Field(default_factory=list)
    electives: List[Elective] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_day_split(self):
        split = (self.inpatient_days or 0) + (self.outpatient_days or 0)
        if split > self.required_days:
            raise ValueError("inpatient_days + outpatient_days cannot exceed required_days")

        types = [r.requirement_type for r in self.requirements]
        if len(set(types)) != len(types):
            raise ValueError("Requirement types must be unique within a clerkship")

        elective_ids = [e.id for e in self.electives]
        if len(set(elective_ids)) != len(elective_ids):
            raise ValueError("Elective ids must be unique within a clerkship")
        return self

    def get_requirement(self, requirement_type: RequirementType) -> Optional[Requirement]:
        for requirement in self.requirements:
            if requirement.requirement_type == requirement_type:
                return requirement
        return None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "clk_fm",
            "name": "Family Medicine",
            "specialty": "Family Medicine",
            "clerkship_type": "outpatient",
            "required_days": 20,
            "inpatient_days": 5,
            "outpatient_days": 15,
            "site_ids": ["site_valley_general"],
            "settings": {"assignment_strategy": "block_based", "block_length_days": 5},
            "requirements": [
                {"requirement_type": "inpatient", "override_mode": "inherit"}
            ],
            "electives": []
        }
    })
