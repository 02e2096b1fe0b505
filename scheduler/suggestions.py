"""
Turns violation statistics into actionable suggestions for administrators.
"""

from dataclasses import dataclass
from typing import Dict, List

from models import ViolationStats

IMPACT_ORDER = {"high": 0, "medium": 1, "low": 2}

# constraint name -> (title, action)
SUGGESTIONS = {
    "preceptor-capacity": (
        "Increase preceptor capacity",
        "Raise max_students_per_day / max_students_per_year or add preceptors for the affected dates",
    ),
    "site-capacity": (
        "Increase site capacity",
        "Raise the site's student limits or spread placements across other sites",
    ),
    "student-onboarding": (
        "Complete student onboarding",
        "Onboard the affected students at the preceptors' health systems",
    ),
    "preceptor-availability": (
        "Add preceptor availability",
        "Extend availability patterns or add exceptions covering the affected dates",
    ),
    "no-eligible-preceptor": (
        "Associate preceptors with the clerkship",
        "No preceptor teaches this clerkship at its sites; link preceptors or widen site scope",
    ),
    "health-system-continuity": (
        "Relax health system continuity",
        "Switch health_system_rule to prefer_same_system or add same-system preceptors",
    ),
    "team-formation": (
        "Fix team configuration",
        "Teams fail validation; check member health systems, sites and specialties",
    ),
    "fallback-exhausted": (
        "Add fallback preceptors",
        "Mark more preceptors as fallback-only or allow cross-system fallbacks",
    ),
    "student-double-booking": (
        "Spread clerkships across the calendar",
        "Students are already booked on these dates by other requirements",
    ),
    "continuity-incomplete": (
        "Allow split assignments",
        "No single preceptor covers the whole requirement; enable allow_split_assignments or add availability",
    ),
    "block-incomplete": (
        "Allow partial blocks",
        "Enable allow_partial_blocks or allow_split_assignments for block-based clerkships",
    ),
}


@dataclass
class Suggestion:
    constraint_name: str
    title: str
    action: str
    impact: str
    count: int
    affected_students: int


def impact_for(count: int) -> str:
    if count > 30:
        return "high"
    if count > 15:
        return "medium"
    return "low"


def generate_suggestions(stats: Dict[str, ViolationStats]) -> List[Suggestion]:
    """One suggestion per violated constraint, most impactful first."""
    suggestions = []
    for name, entry in stats.items():
        title, action = SUGGESTIONS.get(
            name,
            (f"Review '{name}' violations", "Inspect the affected assignments for this constraint"),
        )
        suggestions.append(Suggestion(
            constraint_name=name,
            title=title,
            action=action,
            impact=impact_for(entry.count),
            count=entry.count,
            affected_students=len(entry.affected_students),
        ))

    suggestions.sort(key=lambda s: (IMPACT_ORDER[s.impact], -s.count))
    return suggestions
