"""
Settings cascade: global default -> clerkship -> requirement -> elective.

Settings are plain value structs merged layer by layer, outer to inner:
- the clerkship layer is always merged field by field over the global default;
- a requirement layer follows its override_mode:
    inherit           parent unchanged
    override_fields   field by field over the parent
    override_section  replaces the clerkship layer wholesale; fields the
                      section leaves unset fall back to the global default
- an elective layer is either inherit or override (field by field).
"""

from dataclasses import dataclass, field
from typing import List, Optional

from models import (
    AssignmentStrategy,
    Clerkship,
    Elective,
    ElectiveOverrideMode,
    OverrideMode,
    Requirement,
    SchedulingSettings,
    SettingsOverride,
)
from .errors import ValidationError

SOURCE_GLOBAL = "global_defaults"
SOURCE_PARTIAL = "partial_override"
SOURCE_FULL = "full_override"


@dataclass
class ResolvedSettings:
    """Resolved settings plus provenance."""
    settings: SchedulingSettings
    source: str = SOURCE_GLOBAL
    overridden_fields: List[str] = field(default_factory=list)


def merge_layer(base: SchedulingSettings, layer: SettingsOverride) -> SchedulingSettings:
    """Field-level merge: every field the layer sets wins."""
    specified = layer.specified()
    if not specified:
        return base
    return base.model_copy(update=specified)


def resolve_settings(
    clerkship: Clerkship,
    requirement: Optional[Requirement] = None,
    elective: Optional[Elective] = None,
    global_defaults: Optional[SchedulingSettings] = None
) -> ResolvedSettings:
    """
    Pure function: no I/O, inputs are never mutated.
    """
    base = global_defaults or SchedulingSettings()
    overridden: List[str] = []

    # 1. Clerkship layer
    clerkship_fields = list(clerkship.settings.specified())
    settings = merge_layer(base, clerkship.settings)
    overridden.extend(clerkship_fields)
    source = SOURCE_PARTIAL if clerkship_fields else SOURCE_GLOBAL

    # 2. Requirement layer
    if requirement is not None and requirement.override_mode != OverrideMode.INHERIT:
        layer = requirement.overrides
        if requirement.override_mode == OverrideMode.OVERRIDE_SECTION:
            missing = [
                name for name in ("assignment_strategy", "health_system_rule")
                if getattr(layer, name) is None
            ]
            if missing:
                raise ValidationError(
                    "override_section requires assignment_strategy and health_system_rule",
                    [f"requirements.{requirement.requirement_type.value}.overrides.{name}" for name in missing]
                )
            settings = merge_layer(base, layer)
            overridden = list(layer.specified())
            source = SOURCE_FULL
        else:
            settings = merge_layer(settings, layer)
            overridden.extend(name for name in layer.specified() if name not in overridden)
            if layer.specified() and source == SOURCE_GLOBAL:
                source = SOURCE_PARTIAL

    # 3. Elective layer
    if elective is not None and elective.override_mode == ElectiveOverrideMode.OVERRIDE:
        settings = merge_layer(settings, elective.overrides)
        overridden.extend(name for name in elective.overrides.specified() if name not in overridden)
        if elective.overrides.specified() and source == SOURCE_GLOBAL:
            source = SOURCE_PARTIAL

    return ResolvedSettings(settings=settings, source=source, overridden_fields=overridden)


def validate_resolved_settings(settings: SchedulingSettings) -> List[str]:
    """Structural problems in a resolved settings object (empty list = valid)."""
    problems = []
    if settings.assignment_strategy == AssignmentStrategy.BLOCK_BASED and not settings.block_length_days:
        problems.append("block_based strategy requires a positive block_length_days")
    if settings.team_size_max is not None and settings.team_size_min > settings.team_size_max:
        problems.append("team_size_min cannot exceed team_size_max")
    if settings.max_students_per_day > settings.max_students_per_year:
        problems.append("max_students_per_day cannot exceed max_students_per_year")
    return problems
