"""
Availability data models for the Clerkship Scheduler.

Preceptor availability is described by recurrence patterns rather than
explicit calendars:
1. Weekly (days of the week)
2. Monthly (first/last week, business weeks, specific days of month)
3. Block (a contiguous range, optionally skipping weekends)
4. Individual (a single date)

Higher-specificity patterns win over lower ones for the same date.
Blackout dates are global and remove dates from every preceptor.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from datetime import date as date_type


class PatternType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    BLOCK = "block"
    INDIVIDUAL = "individual"


class MonthlyType(str, Enum):
    FIRST_WEEK = "first_week"
    LAST_WEEK = "last_week"
    FIRST_BUSINESS_WEEK = "first_business_week"
    LAST_BUSINESS_WEEK = "last_business_week"
    SPECIFIC_DAYS = "specific_days"


class WeekDefinition(str, Enum):
    """How 'a week' is measured for first_week / last_week."""
    SEVEN_DAYS = "seven_days"   # First/last 7 calendar days
    CALENDAR = "calendar"       # First/last Sunday-Saturday week
    BUSINESS = "business"       # First/last 5 weekdays


SPECIFICITY = {
    PatternType.WEEKLY: 1,
    PatternType.MONTHLY: 1,
    PatternType.BLOCK: 2,
    PatternType.INDIVIDUAL: 3,
}


class AvailabilityException(BaseModel):
    """Explicit add/remove override for a single date."""
    date: date_type
    is_available: bool = Field(description="True adds the date, False removes it")
    reason: Optional[str] = None


class AvailabilityPattern(BaseModel):
    """
    A recurrence rule scoped to a preceptor and optionally a site.
    """
    id: str = Field(description="Unique identifier")
    preceptor_id: str = Field(description="Owner of this pattern")
    site_id: Optional[str] = Field(default=None, description="If None, applies to every site")
    pattern_type: PatternType
    is_available: bool = Field(default=True, description="False marks the generated dates unavailable")
    enabled: bool = Field(default=True)

    date_range_start: date_type
    date_range_end: date_type

    # --- Type-specific configuration ---
    days_of_week: List[int] = Field(default_factory=list, description="0=Monday, 6=Sunday (weekly)")
    monthly_type: Optional[MonthlyType] = None
    week_definition: Optional[WeekDefinition] = None
    specific_days: List[int] = Field(default_factory=list, description="Days of month 1-31 (monthly)")
    exclude_weekends: bool = Field(default=False, description="Skip Saturday/Sunday (block)")

    exceptions: List[AvailabilityException] = Field(default_factory=list)

    @field_validator('days_of_week')
    @classmethod
    def validate_weekdays(cls, v: List[int]) -> List[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days_of_week must be between 0 and 6")
        if len(set(v)) != len(v):
            raise ValueError("days_of_week must be unique")
        return v

    @field_validator('specific_days')
    @classmethod
    def validate_month_days(cls, v: List[int]) -> List[int]:
        if any(d < 1 or d > 31 for d in v):
            raise ValueError("specific_days must be between 1 and 31")
        return v

    @model_validator(mode='after')
    def validate_config(self):
        if self.date_range_end < self.date_range_start:
            raise ValueError("date_range_end cannot be before date_range_start")

        if self.pattern_type == PatternType.INDIVIDUAL and self.date_range_start != self.date_range_end:
            raise ValueError("Individual patterns must start and end on the same date")

        if self.pattern_type == PatternType.WEEKLY and not self.days_of_week:
            raise ValueError("Weekly patterns need at least one day of the week")

        if self.pattern_type == PatternType.MONTHLY:
            if self.monthly_type is None:
                raise ValueError("Monthly patterns need a monthly_type")
            if self.monthly_type == MonthlyType.SPECIFIC_DAYS and not self.specific_days:
                raise ValueError("specific_days patterns need at least one day of the month")
            if self.monthly_type in (MonthlyType.FIRST_WEEK, MonthlyType.LAST_WEEK) and self.week_definition is None:
                raise ValueError("first_week/last_week patterns need a week_definition")
        return self

    @property
    def specificity(self) -> int:
        return SPECIFICITY[self.pattern_type]

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "pat_smith_weekdays",
            "preceptor_id": "prec_smith",
            "site_id": None,
            "pattern_type": "weekly",
            "is_available": True,
            "date_range_start": "2025-01-06",
            "date_range_end": "2025-06-27",
            "days_of_week": [0, 1, 2, 3, 4],
            "exceptions": [{"date": "2025-02-14", "is_available": False, "reason": "Conference"}]
        }
    })


class BlackoutDate(BaseModel):
    """A date (or inclusive range) excluded from all scheduling."""
    id: str = Field(description="Unique identifier")
    date: date_type
    end_date: Optional[date_type] = Field(default=None, description="Inclusive end for a range")
    reason: str = Field(default="", description="e.g. 'Winter break'")

    @model_validator(mode='after')
    def validate_range(self):
        if self.end_date is not None and self.end_date < self.date:
            raise ValueError("Blackout end_date cannot be before date")
        return self

    def covers(self, day: date_type) -> bool:
        return self.date <= day <= (self.end_date or self.date)
