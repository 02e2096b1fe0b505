"""
Deterministic scenario generator for the Clerkship Scheduler.
STRATEGY: small hand-shaped cohorts, one per scheduling concern, so runs are
reproducible and failures are easy to read.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Dict, List

from models import (
    AssignmentStrategy,
    AvailabilityException,
    AvailabilityPattern,
    BlackoutDate,
    CapacityRule,
    Clerkship,
    Elective,
    ElectiveOverrideMode,
    HealthSystem,
    HealthSystemRule,
    MonthlyType,
    OverrideMode,
    PatternType,
    Preceptor,
    PreceptorTeam,
    Requirement,
    RequirementType,
    ScheduleSnapshot,
    SettingsOverride,
    Site,
    SiteCapacityRule,
    Student,
    TeamMember,
    WeekDefinition,
)

logger = logging.getLogger(__name__)

WEEKDAYS = [0, 1, 2, 3, 4]


class ScenarioGenerator:
    """
    Builds ScheduleSnapshots for the CLI and for manual experiments.
    Every scenario covers [start_date, start_date + horizon_days).
    """

    def __init__(self, start_date: date, horizon_days: int = 90):
        self.start_date = start_date
        self.end_date = start_date + timedelta(days=horizon_days - 1)

    # --- Building blocks ---

    def _weekly(self, pattern_id: str, preceptor_id: str, days: List[int] = WEEKDAYS, **extra) -> AvailabilityPattern:
        return AvailabilityPattern(
            id=pattern_id,
            preceptor_id=preceptor_id,
            pattern_type=PatternType.WEEKLY,
            date_range_start=self.start_date,
            date_range_end=self.end_date,
            days_of_week=days,
            **extra
        )

    @staticmethod
    def _students(count: int, health_systems: List[str]) -> List[Student]:
        students = []
        for i in range(count):
            system = health_systems[i % len(health_systems)]
            students.append(Student(
                id=f"stu_{i + 1:03d}",
                name=f"Student {i + 1:03d}",
                email=f"student{i + 1:03d}@med.example.edu",
                health_system_id=system,
            ))
        return students

    # --- Scenarios ---

    def capacity_limited(self) -> ScheduleSnapshot:
        """
        3 preceptors taking 1/2/3 students a day, 5 students needing 10 days
        each. Daily capacity (6) barely covers the cohort.
        """
        systems = [HealthSystem(id="hs_valley", name="Valley Health", location="Springfield")]
        sites = [Site(id="site_valley_clinic", name="Valley Family Clinic", health_system_id="hs_valley")]

        preceptors, patterns, rules = [], [], []
        for i, per_day in enumerate([1, 2, 3], start=1):
            pid = f"prec_fm_{i}"
            preceptors.append(Preceptor(
                id=pid,
                name=f"Dr. Family {i}",
                email=f"family{i}@valley.example.org",
                health_system_id="hs_valley",
                site_ids=["site_valley_clinic"],
                specialty="Family Medicine",
                clerkship_ids=["clk_fm"],
            ))
            patterns.append(self._weekly(f"pat_fm_{i}", pid))
            rules.append(CapacityRule(
                id=f"cap_fm_{i}", preceptor_id=pid, max_students_per_day=per_day, max_students_per_year=20
            ))

        clerkship = Clerkship(
            id="clk_fm",
            name="Family Medicine",
            specialty="Family Medicine",
            clerkship_type=RequirementType.OUTPATIENT,
            required_days=10,
            site_ids=["site_valley_clinic"],
            settings=SettingsOverride(assignment_strategy=AssignmentStrategy.CONTINUOUS_SINGLE),
        )

        return ScheduleSnapshot(
            health_systems=systems,
            sites=sites,
            students=self._students(5, ["hs_valley"]),
            preceptors=preceptors,
            clerkships=[clerkship],
            capacity_rules=rules,
            availability_patterns=patterns,
        )

    def multi_team(self) -> ScheduleSnapshot:
        """
        Two health systems with one team each, a cross-system team that fails
        validation, and a global fallback preceptor.
        """
        systems = [
            HealthSystem(id="hs_valley", name="Valley Health"),
            HealthSystem(id="hs_river", name="River Medical"),
        ]
        sites = [
            Site(id="site_valley_general", name="Valley General Hospital", health_system_id="hs_valley"),
            Site(id="site_river_regional", name="River Regional", health_system_id="hs_river"),
        ]

        preceptors, patterns = [], []
        for system, site in (("valley", "site_valley_general"), ("river", "site_river_regional")):
            for i in range(1, 4):
                pid = f"prec_im_{system}_{i}"
                preceptors.append(Preceptor(
                    id=pid,
                    name=f"Dr. {system.title()} Internist {i}",
                    email=f"im{i}@{system}.example.org",
                    health_system_id=f"hs_{system}",
                    site_ids=[site],
                    specialty="Internal Medicine",
                    clerkship_ids=["clk_im"],
                ))
                patterns.append(self._weekly(f"pat_im_{system}_{i}", pid))

        preceptors.append(Preceptor(
            id="prec_hospitalist",
            name="Dr. Night Hospitalist",
            email="hospitalist@valley.example.org",
            health_system_id="hs_valley",
            site_ids=["site_valley_general"],
            specialty="Internal Medicine",
            is_global_fallback_only=True,
        ))
        patterns.append(self._weekly("pat_hospitalist", "prec_hospitalist", days=[0, 1, 2, 3, 4, 5, 6]))

        def team(team_id: str, name: str, member_ids: List[str]) -> PreceptorTeam:
            return PreceptorTeam(
                id=team_id,
                name=name,
                clerkship_id="clk_im",
                requirement_type=RequirementType.INPATIENT,
                members=[TeamMember(preceptor_id=pid, priority=i + 1) for i, pid in enumerate(member_ids)],
                require_same_health_system=True,
            )

        teams = [
            team("team_mixed", "Mixed Wards", ["prec_im_valley_1", "prec_im_river_1"]),
            team("team_valley", "Valley Wards", ["prec_im_valley_2", "prec_im_valley_3"]),
            team("team_river", "River Wards", ["prec_im_river_2", "prec_im_river_3"]),
        ]

        clerkship = Clerkship(
            id="clk_im",
            name="Internal Medicine",
            specialty="Internal Medicine",
            clerkship_type=RequirementType.INPATIENT,
            required_days=15,
            settings=SettingsOverride(
                assignment_strategy=AssignmentStrategy.TEAM_CONTINUITY,
                health_system_rule=HealthSystemRule.ENFORCE_SAME_SYSTEM,
                allow_teams=True,
                team_size_min=2,
                team_size_max=3,
                team_require_same_health_system=True,
            ),
        )

        return ScheduleSnapshot(
            health_systems=systems,
            sites=sites,
            students=self._students(6, ["hs_valley", "hs_river"]),
            preceptors=preceptors,
            clerkships=[clerkship],
            teams=teams,
            availability_patterns=patterns,
        )

    def electives(self) -> ScheduleSnapshot:
        """
        A surgery clerkship with an inpatient/outpatient split and two
        electives, one of which overrides the parent settings. prec_gs_2
        splits the week between two sites and the surgical center takes at
        most two students a day.
        """
        systems = [HealthSystem(id="hs_valley", name="Valley Health")]
        sites = [
            Site(id="site_valley_general", name="Valley General Hospital", health_system_id="hs_valley"),
            Site(id="site_valley_surgical", name="Valley Surgical Center", health_system_id="hs_valley"),
        ]

        specs = [
            ("prec_gs_1", "General Surgery", ["site_valley_general"]),
            ("prec_gs_2", "General Surgery", ["site_valley_general", "site_valley_surgical"]),
            ("prec_ortho", "Orthopedics", ["site_valley_surgical"]),
            ("prec_uro", "Urology", ["site_valley_surgical"]),
        ]
        preceptors, patterns = [], []
        for pid, specialty, site_ids in specs:
            preceptors.append(Preceptor(
                id=pid,
                name=f"Dr. {pid.split('_', 1)[1].replace('_', ' ').title()}",
                email=f"{pid}@valley.example.org",
                health_system_id="hs_valley",
                site_ids=site_ids,
                specialty=specialty,
                clerkship_ids=["clk_surg"],
            ))
            if len(site_ids) > 1:
                patterns.append(self._weekly(f"pat_{pid}_general", pid, [0, 1, 2], site_id="site_valley_general"))
                patterns.append(self._weekly(f"pat_{pid}_surgical", pid, [3, 4], site_id="site_valley_surgical"))
            else:
                patterns.append(self._weekly(f"pat_{pid}", pid))

        clerkship = Clerkship(
            id="clk_surg",
            name="Surgery",
            specialty="General Surgery",
            clerkship_type=RequirementType.INPATIENT,
            required_days=20,
            inpatient_days=10,
            outpatient_days=5,
            requirements=[
                Requirement(requirement_type=RequirementType.INPATIENT),
                Requirement(
                    requirement_type=RequirementType.OUTPATIENT,
                    override_mode=OverrideMode.OVERRIDE_FIELDS,
                    overrides=SettingsOverride(assignment_strategy=AssignmentStrategy.DAILY_ROTATION),
                ),
                Requirement(requirement_type=RequirementType.ELECTIVE),
            ],
            electives=[
                Elective(
                    id="elec_ortho",
                    name="Orthopedics",
                    minimum_days=3,
                    specialty="Orthopedics",
                    preceptor_ids=["prec_ortho"],
                ),
                Elective(
                    id="elec_uro",
                    name="Urology",
                    minimum_days=2,
                    specialty="Urology",
                    site_ids=["site_valley_surgical"],
                    override_mode=ElectiveOverrideMode.OVERRIDE,
                    overrides=SettingsOverride(allow_split_assignments=True),
                ),
            ],
        )

        return ScheduleSnapshot(
            health_systems=systems,
            sites=sites,
            students=self._students(4, ["hs_valley"]),
            preceptors=preceptors,
            clerkships=[clerkship],
            availability_patterns=patterns,
            site_capacity_rules=[SiteCapacityRule(
                id="sitecap_surgical", site_id="site_valley_surgical",
                max_students_per_day=2, max_students_per_year=40,
            )],
        )

    def partial_availability(self) -> ScheduleSnapshot:
        """
        Block-based pediatrics against sparse calendars: monthly and block
        patterns, one-off exceptions and a holiday blackout.
        """
        systems = [HealthSystem(id="hs_valley", name="Valley Health")]
        sites = [Site(id="site_valley_childrens", name="Valley Children's", health_system_id="hs_valley")]

        preceptors = [
            Preceptor(
                id=pid,
                name=name,
                email=f"{pid}@valley.example.org",
                health_system_id="hs_valley",
                site_ids=["site_valley_childrens"],
                specialty="Pediatrics",
                clerkship_ids=["clk_peds"],
            )
            for pid, name in (
                ("prec_peds_1", "Dr. Morgan Reyes"),
                ("prec_peds_2", "Dr. Casey Park"),
                ("prec_peds_3", "Dr. Riley Chen"),
            )
        ]

        patterns = [
            # First business week of every month
            AvailabilityPattern(
                id="pat_peds_1_monthly",
                preceptor_id="prec_peds_1",
                pattern_type=PatternType.MONTHLY,
                date_range_start=self.start_date,
                date_range_end=self.end_date,
                monthly_type=MonthlyType.FIRST_WEEK,
                week_definition=WeekDefinition.BUSINESS,
            ),
            # A single three-week block, weekdays only, with a day off in the middle
            AvailabilityPattern(
                id="pat_peds_2_block",
                preceptor_id="prec_peds_2",
                pattern_type=PatternType.BLOCK,
                date_range_start=self.start_date + timedelta(days=14),
                date_range_end=self.start_date + timedelta(days=34),
                exclude_weekends=True,
                exceptions=[
                    AvailabilityException(
                        date=self.start_date + timedelta(days=21),
                        is_available=False,
                        reason="Conference",
                    )
                ],
            ),
            # Tuesdays and Thursdays, blocked out on one specific day
            self._weekly("pat_peds_3_weekly", "prec_peds_3", days=[1, 3]),
            AvailabilityPattern(
                id="pat_peds_3_off",
                preceptor_id="prec_peds_3",
                pattern_type=PatternType.INDIVIDUAL,
                is_available=False,
                date_range_start=self.start_date + timedelta(days=9),
                date_range_end=self.start_date + timedelta(days=9),
            ),
        ]

        clerkship = Clerkship(
            id="clk_peds",
            name="Pediatrics",
            specialty="Pediatrics",
            clerkship_type=RequirementType.OUTPATIENT,
            required_days=10,
            settings=SettingsOverride(
                assignment_strategy=AssignmentStrategy.BLOCK_BASED,
                block_length_days=5,
                allow_partial_blocks=True,
            ),
        )

        blackout = BlackoutDate(
            id="blk_holiday",
            date=self.start_date + timedelta(days=28),
            reason="School holiday",
        )

        return ScheduleSnapshot(
            health_systems=systems,
            sites=sites,
            students=self._students(3, ["hs_valley"]),
            preceptors=preceptors,
            clerkships=[clerkship],
            availability_patterns=patterns,
            blackout_dates=[blackout],
        )


SCENARIOS: Dict[str, Callable[[ScenarioGenerator], ScheduleSnapshot]] = {
    "capacity_limited": ScenarioGenerator.capacity_limited,
    "multi_team": ScenarioGenerator.multi_team,
    "electives": ScenarioGenerator.electives,
    "partial_availability": ScenarioGenerator.partial_availability,
}


def build_scenario(name: str, start_date: date, horizon_days: int = 90) -> ScheduleSnapshot:
    """Look up a scenario by name and build its snapshot."""
    if name not in SCENARIOS:
        raise KeyError(f"Unknown scenario '{name}'. Choose from: {', '.join(SCENARIOS)}")
    snapshot = SCENARIOS[name](ScenarioGenerator(start_date, horizon_days))
    logger.info(
        f"Built scenario '{name}': {len(snapshot.students)} students, "
        f"{len(snapshot.preceptors)} preceptors, {len(snapshot.clerkships)} clerkship(s)"
    )
    return snapshot
