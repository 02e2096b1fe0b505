"""
Serializable bundle of everything a scheduling run reads.

Used to hydrate the in-memory repository from JSON and to save reproducible
scenarios.
"""

from typing import Dict, List
from pydantic import BaseModel, Field

from .availability import AvailabilityPattern, BlackoutDate
from .capacity import CapacityRule, SiteCapacityRule
from .clerkship import Clerkship, RequirementType, SchedulingSettings
from .roster import HealthSystem, Preceptor, Site, Student
from .schedule import Assignment
from .team import PreceptorTeam


class ScheduleSnapshot(BaseModel):
    health_systems: List[HealthSystem] = Field(default_factory=list)
    sites: List[Site] = Field(default_factory=list)
    students: List[Student] = Field(default_factory=list)
    preceptors: List[Preceptor] = Field(default_factory=list)
    clerkships: List[Clerkship] = Field(default_factory=list)
    teams: List[PreceptorTeam] = Field(default_factory=list)
    capacity_rules: List[CapacityRule] = Field(default_factory=list)
    site_capacity_rules: List[SiteCapacityRule] = Field(default_factory=list)
    availability_patterns: List[AvailabilityPattern] = Field(default_factory=list)
    blackout_dates: List[BlackoutDate] = Field(default_factory=list)
    assignments: List[Assignment] = Field(default_factory=list, description="Previously persisted assignments")
    global_defaults: Dict[RequirementType, SchedulingSettings] = Field(
        default_factory=dict,
        description="Outermost settings layer, per requirement type"
    )
