"""
Capacity rule models.

A rule bounds how many students a preceptor (or a whole site) may take,
optionally scoped to a clerkship and/or requirement type. More specific scopes
override less specific ones.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .clerkship import RequirementType


class CapacityLimits(BaseModel):
    """Student ceilings shared by preceptor and site rules."""
    id: str = Field(description="Unique identifier")
    clerkship_id: Optional[str] = Field(default=None, description="Scope to one clerkship")
    requirement_type: Optional[RequirementType] = Field(default=None, description="Scope to one requirement type")

    max_students_per_day: int = Field(ge=1)
    max_students_per_year: int = Field(ge=1)
    max_students_per_block: Optional[int] = Field(default=None, ge=1)
    max_blocks_per_year: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode='after')
    def validate_limits(self):
        if self.max_students_per_year < self.max_students_per_day:
            raise ValueError("max_students_per_year must be >= max_students_per_day")
        if (self.max_students_per_block is None) != (self.max_blocks_per_year is None):
            raise ValueError("max_students_per_block and max_blocks_per_year must be set together")
        return self

    @property
    def specificity(self) -> int:
        """4 = clerkship+type, 3 = clerkship, 2 = type, 1 = unscoped."""
        if self.clerkship_id and self.requirement_type:
            return 4
        if self.clerkship_id:
            return 3
        if self.requirement_type:
            return 2
        return 1


class CapacityRule(CapacityLimits):
    """
    (preceptor, optional clerkship, optional requirement type) -> student limits.
    """
    preceptor_id: str = Field(description="Preceptor this rule bounds")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "cap_smith_fm",
            "preceptor_id": "prec_smith",
            "clerkship_id": "clk_fm",
            "requirement_type": None,
            "max_students_per_day": 1,
            "max_students_per_year": 10,
            "max_students_per_block": 1,
            "max_blocks_per_year": 8
        }
    })


class SiteCapacityRule(CapacityLimits):
    """
    (site, optional clerkship, optional requirement type) -> student limits.
    Counts every student placed at the site, whichever preceptor teaches them.
    """
    site_id: str = Field(description="Site this rule bounds")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "sitecap_valley",
            "site_id": "site_valley_general",
            "clerkship_id": None,
            "requirement_type": "inpatient",
            "max_students_per_day": 4,
            "max_students_per_year": 40
        }
    })
