"""Tests for the editing workflows: reassign and swap."""

from datetime import timedelta

import pytest

from scheduler.engine import SchedulingEngine
from scheduler.errors import ConflictError, NotFoundError, ValidationError

from .conftest import (
    MONDAY,
    make_assignment,
    make_blackout,
    make_capacity_rule,
    make_clerkship,
    make_health_system,
    make_preceptor,
    make_repository,
    make_site,
    make_student,
    make_weekly_pattern,
)

A1 = make_assignment("stu_1", "prec_1", MONDAY)
A2 = make_assignment("stu_2", "prec_2", MONDAY)


def _repo(**kwargs):
    return make_repository(
        students=[make_student("stu_1"), make_student("stu_2")],
        preceptors=[
            make_preceptor("prec_1"),
            make_preceptor("prec_2"),
            make_preceptor("prec_3"),
            make_preceptor("prec_weekend"),
        ],
        clerkships=[make_clerkship()],
        availability_patterns=[
            make_weekly_pattern("prec_1"),
            make_weekly_pattern("prec_2"),
            make_weekly_pattern("prec_3"),
            make_weekly_pattern("prec_weekend", days_of_week=[5, 6]),
        ],
        assignments=[A1, A2],
        **kwargs,
    )


class TestReassign:

    def test_reassign_updates_the_repository(self, config) -> None:
        repo = _repo()
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_3")
        assert result.success
        assert result.assignments[0].preceptor_id == "prec_3"
        assert repo.get_assignment(A1.id).preceptor_id == "prec_3"
        assert result.statistics.total_assignments == 1

    def test_dry_run_leaves_the_repository_alone(self, config) -> None:
        repo = _repo()
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_3", dry_run=True)
        assert result.success
        assert result.dry_run
        assert repo.get_assignment(A1.id).preceptor_id == "prec_1"

    def test_unavailable_preceptor_is_rejected(self, config) -> None:
        repo = _repo()
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_weekend")
        assert not result.success
        assert [v.constraint_name for v in result.violations] == ["preceptor-availability"]
        assert repo.get_assignment(A1.id).preceptor_id == "prec_1"

    def test_availability_at_another_site_is_rejected(self, config) -> None:
        repo = make_repository(
            sites=[make_site("site_valley"), make_site("site_other")],
            students=[make_student("stu_1")],
            preceptors=[
                make_preceptor("prec_1"),
                make_preceptor("prec_3", site_ids=["site_valley", "site_other"]),
            ],
            clerkships=[make_clerkship(site_ids=["site_valley"])],
            availability_patterns=[
                make_weekly_pattern("prec_1"),
                make_weekly_pattern("prec_3", site_id="site_other"),
            ],
            assignments=[A1],
        )
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_3")
        assert not result.success
        assert [v.constraint_name for v in result.violations] == ["preceptor-availability"]

    def test_reassign_records_the_site(self, config) -> None:
        result = SchedulingEngine(_repo(), config).reassign_to_preceptor(A1.id, "prec_3", dry_run=True)
        assert result.assignments[0].site_id == "site_valley"

    def test_student_not_onboarded_is_rejected(self, config) -> None:
        repo = _repo(health_systems=[make_health_system(), make_health_system("hs_river", "River")])
        repo.add_preceptor(make_preceptor("prec_river", health_system_id="hs_river"))
        repo.students["stu_1"] = repo.students["stu_1"].model_copy(
            update={"onboarded_health_system_ids": ["hs_valley"]}
        )
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_river", dry_run=True)
        assert [v.constraint_name for v in result.violations] == ["student-onboarding"]

    def test_full_preceptor_is_rejected(self, config) -> None:
        repo = _repo(capacity_rules=[make_capacity_rule("prec_2", per_day=1)])
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_2")
        assert not result.success
        assert [v.constraint_name for v in result.violations] == ["preceptor-capacity"]

    def test_blacked_out_date_is_rejected(self, config) -> None:
        repo = _repo(blackout_dates=[make_blackout(MONDAY)])
        result = SchedulingEngine(repo, config).reassign_to_preceptor(A1.id, "prec_3")
        assert not result.success
        assert result.violations[0].constraint_name == "blackout-date"

    def test_same_preceptor_is_a_conflict(self, config) -> None:
        with pytest.raises(ConflictError):
            SchedulingEngine(_repo(), config).reassign_to_preceptor(A1.id, "prec_1")

    def test_unknown_ids_raise(self, config) -> None:
        engine = SchedulingEngine(_repo(), config)
        with pytest.raises(NotFoundError):
            engine.reassign_to_preceptor("missing", "prec_3")
        with pytest.raises(NotFoundError):
            engine.reassign_to_preceptor(A1.id, "prec_missing")


class TestSwap:

    def test_swap_exchanges_preceptors(self, config) -> None:
        # Both preceptors are full on the day; the swap frees each slot first
        repo = _repo(capacity_rules=[
            make_capacity_rule("prec_1", per_day=1),
            make_capacity_rule("prec_2", per_day=1),
        ])
        result = SchedulingEngine(repo, config).swap_assignments(A1.id, A2.id)
        assert result.success
        assert repo.get_assignment(A1.id).preceptor_id == "prec_2"
        assert repo.get_assignment(A2.id).preceptor_id == "prec_1"
        assert result.statistics.preceptors_utilized == 2

    def test_swap_is_rechecked_for_each_date(self, config) -> None:
        saturday = MONDAY + timedelta(days=5)
        weekend = make_assignment("stu_2", "prec_weekend", saturday)
        repo = _repo()
        repo.save_assignments([weekend])
        result = SchedulingEngine(repo, config).swap_assignments(A1.id, weekend.id)
        assert not result.success
        assert {v.constraint_name for v in result.violations} == {"preceptor-availability"}
        assert repo.get_assignment(A1.id).preceptor_id == "prec_1"

    def test_swap_with_itself_is_invalid(self, config) -> None:
        with pytest.raises(ValidationError) as exc_info:
            SchedulingEngine(_repo(), config).swap_assignments(A1.id, A1.id)
        assert exc_info.value.fields == ["assignment_id_2"]

    def test_swap_with_same_preceptor_is_invalid(self, config) -> None:
        other = make_assignment("stu_2", "prec_1", MONDAY + timedelta(days=1))
        repo = _repo()
        repo.save_assignments([other])
        with pytest.raises(ValidationError):
            SchedulingEngine(repo, config).swap_assignments(A1.id, other.id)

    def test_unknown_assignment_raises(self, config) -> None:
        with pytest.raises(NotFoundError):
            SchedulingEngine(_repo(), config).swap_assignments(A1.id, "missing")
