"""
Preceptor team models.

A team is an ordered group of preceptors sharing responsibility for a
clerkship requirement under continuity constraints.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .clerkship import RequirementType


class TeamMember(BaseModel):
    """A preceptor's seat on a team. Lower priority numbers are tried first."""
    preceptor_id: str
    priority: int = Field(ge=1, description="1 = first choice")
    role: Optional[str] = Field(default=None, description="e.g. 'attending'")
    is_fallback_only: bool = Field(
        default=False,
        description="Only used when the team's primary members are exhausted"
    )


class TeamRules(BaseModel):
    """Continuity configuration a prospective team is validated against."""
    require_same_health_system: bool = False
    require_same_site: bool = False
    require_same_specialty: bool = False
    requires_admin_approval: bool = False
    min_members: Optional[int] = Field(default=None, ge=1)
    max_members: Optional[int] = Field(default=None, ge=1)


class PreceptorTeam(BaseModel):
    """
    Configured team for a clerkship (optionally a single requirement type).
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1)
    clerkship_id: str
    requirement_type: Optional[RequirementType] = Field(
        default=None,
        description="If None, the team serves every requirement of the clerkship"
    )
    members: List[TeamMember] = Field(default_factory=list)

    # Continuity flags
    require_same_health_system: bool = Field(default=False)
    require_same_site: bool = Field(default=False)
    require_same_specialty: bool = Field(default=False)
    requires_admin_approval: bool = Field(default=False)

    @model_validator(mode='after')
    def validate_members(self):
        priorities = [m.priority for m in self.members]
        if len(set(priorities)) != len(priorities):
            raise ValueError("Team member priorities must be unique")
        ids = [m.preceptor_id for m in self.members]
        if len(set(ids)) != len(ids):
            raise ValueError("A preceptor can only appear once in a team")
        return self

    @property
    def rules(self) -> TeamRules:
        return TeamRules(
            require_same_health_system=self.require_same_health_system,
            require_same_site=self.require_same_site,
            require_same_specialty=self.require_same_specialty,
            requires_admin_approval=self.requires_admin_approval,
        )

    def serves(self, clerkship_id: str, requirement_type: RequirementType) -> bool:
        if self.clerkship_id != clerkship_id:
            return False
        return self.requirement_type is None or self.requirement_type == requirement_type

    def ordered_members(self, fallback_only: bool = False) -> List[TeamMember]:
        """Members by ascending priority, filtered to primaries (default) or fallbacks."""
        chosen = [m for m in self.members if m.is_fallback_only == fallback_only]
        return sorted(chosen, key=lambda m: m.priority)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "team_fm_valley",
            "name": "Valley FM Team",
            "clerkship_id": "clk_fm",
            "requirement_type": "outpatient",
            "members": [
                {"preceptor_id": "prec_smith", "priority": 1, "role": "lead"},
                {"preceptor_id": "prec_jones", "priority": 2},
                {"preceptor_id": "prec_backup", "priority": 3, "is_fallback_only": True}
            ],
            "require_same_health_system": True,
            "requires_admin_approval": False
        }
    })


class TeamValidationResult(BaseModel):
    """Advisory outcome of validating a prospective team."""
    is_valid: bool
    errors: List[str] = Field(default_factory=list, description="Blocking problems")
    warnings: List[str] = Field(default_factory=list, description="Non-blocking problems")
    requires_approval: bool = Field(default=False, description="Needs an administrator sign-off")
