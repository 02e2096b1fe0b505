"""
Roster data models for the Clerkship Scheduler.

This module defines the 'People & Places' of the scheduler:
1. Students (the demand side, read-only to the engine)
2. Preceptors (supervising clinicians who supply teaching days)
3. Sites and Health Systems (the organizational graph preceptors belong to)

Relationships are held as identifier references, never as nested objects.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


class HealthSystem(BaseModel):
    """An organization that owns one or more clinical sites."""
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1, description="e.g. 'Valley Health'")
    location: Optional[str] = Field(default=None, description="City or region")


class Site(BaseModel):
    """A physical teaching location (hospital, clinic)."""
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1, description="e.g. 'Valley General Hospital'")
    health_system_id: Optional[str] = Field(default=None, description="Owning health system")
    address: Optional[str] = Field(default=None)


class Student(BaseModel):
    """
    A learner who must complete clerkship requirements.
    Consumed read-only by the engine.
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1, description="Full name")
    email: str = Field(description="Contact email")
    health_system_id: Optional[str] = Field(
        default=None,
        description="Home (onboarded) health system, used as the continuity anchor"
    )
    onboarded_health_system_ids: Optional[List[str]] = Field(
        default=None,
        description="Health systems the student completed onboarding at (None = not tracked)"
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "stu_001",
            "name": "Jordan Lee",
            "email": "jordan.lee@med.example.edu",
            "health_system_id": "hs_valley",
            "onboarded_health_system_ids": ["hs_valley"]
        }
    })


class Preceptor(BaseModel):
    """
    Supervising clinician.
    Supplies teaching days through availability patterns and is bounded by capacity rules.
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1, description="Name of the clinician")
    email: str = Field(description="Contact email")
    phone: Optional[str] = Field(default=None, description="Contact phone")

    # Organizational graph
    health_system_id: Optional[str] = Field(default=None, description="Employing health system")
    site_ids: List[str] = Field(default_factory=list, description="Site affiliations")
    specialty: Optional[str] = Field(default=None, description="e.g. 'Family Medicine'")
    clerkship_ids: List[str] = Field(
        default_factory=list,
        description="Clerkships this preceptor teaches (empty = any)"
    )

    # Fallback policy
    is_global_fallback_only: bool = Field(
        default=False,
        description="Only used when every primary preceptor is exhausted"
    )

    @field_validator('site_ids')
    @classmethod
    def unique_sites(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError("Site affiliations must be unique")
        return v

    def teaches(self, clerkship_id: str) -> bool:
        """True if the preceptor may be assigned to the given clerkship."""
        return not self.clerkship_ids or clerkship_id in self.clerkship_ids

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "prec_smith",
            "name": "Dr. Alex Smith",
            "email": "asmith@valley.example.org",
            "phone": "555-0100",
            "health_system_id": "hs_valley",
            "site_ids": ["site_valley_general"],
            "specialty": "Family Medicine",
            "clerkship_ids": ["clk_fm"],
            "is_global_fallback_only": False
        }
    })
