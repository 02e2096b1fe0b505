"""Tests for the in-memory repository and the built-in scenarios."""

from collections import Counter
from datetime import timedelta
from pathlib import Path

import pytest

from generators.scenarios import SCENARIOS, build_scenario
from models import CapacityRule, SiteCapacityRule
from scheduler.engine import SchedulingEngine
from scheduler.errors import ConflictError, DataAccessError, NotFoundError, ValidationError
from scheduler.repository import InMemoryRepository

from .conftest import (
    MONDAY,
    make_assignment,
    make_options,
    make_preceptor,
    make_repository,
    make_site_capacity_rule,
    make_snapshot,
    make_student,
)


class TestInMemoryRepository:

    def test_duplicate_ids_in_snapshot_conflict(self) -> None:
        with pytest.raises(ConflictError):
            make_repository(students=[make_student("stu_1"), make_student("stu_1")])

    def test_malformed_snapshot_is_a_data_access_error(self) -> None:
        with pytest.raises(DataAccessError):
            InMemoryRepository.from_dict({"students": [{"id": "stu_1"}]})

    def test_unreadable_file_is_a_data_access_error(self, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(DataAccessError):
            InMemoryRepository.from_file(str(path))

    def test_snapshot_file_reloads(self, tmp_path) -> None:
        repo = make_repository(
            students=[make_student("stu_1")],
            preceptors=[make_preceptor("prec_1")],
            assignments=[make_assignment("stu_1", "prec_1", MONDAY)],
        )
        path = tmp_path / "snapshot.json"
        repo.save_to_file(str(path))
        reloaded = InMemoryRepository.from_file(str(path))
        assert reloaded.to_snapshot() == repo.to_snapshot()

    def test_lookups_raise_not_found(self) -> None:
        repo = make_repository()
        with pytest.raises(NotFoundError) as exc_info:
            repo.get_preceptor("prec_missing")
        assert exc_info.value.entity == "Preceptor"
        assert exc_info.value.code == "NOT_FOUND"

    def test_save_assignments_is_all_or_nothing(self) -> None:
        existing = make_assignment("stu_1", "prec_1", MONDAY)
        repo = make_repository(assignments=[existing])
        fresh = make_assignment("stu_2", "prec_1", MONDAY)
        with pytest.raises(ConflictError):
            repo.save_assignments([fresh, existing])
        assert len(repo.list_assignments()) == 1

    def test_list_assignments_by_range(self) -> None:
        repo = make_repository(assignments=[
            make_assignment("stu_1", "prec_1", MONDAY),
            make_assignment("stu_1", "prec_1", MONDAY + timedelta(days=7)),
        ])
        assert len(repo.list_assignments(MONDAY, MONDAY + timedelta(days=6))) == 1

    def test_preceptor_with_assignments_cannot_be_removed(self) -> None:
        repo = make_repository(
            preceptors=[make_preceptor("prec_1"), make_preceptor("prec_2")],
            assignments=[make_assignment("stu_1", "prec_1", MONDAY)],
        )
        with pytest.raises(ConflictError):
            repo.remove_preceptor("prec_1")
        repo.remove_preceptor("prec_2")
        assert [p.id for p in repo.list_preceptors()] == ["prec_1"]

    def test_add_preceptor_conflict(self) -> None:
        repo = make_repository(preceptors=[make_preceptor("prec_1")])
        with pytest.raises(ConflictError):
            repo.add_preceptor(make_preceptor("prec_1"))

    def test_add_capacity_rule_validates_dicts(self) -> None:
        repo = make_repository(preceptors=[make_preceptor("prec_1")])
        rule = repo.add_capacity_rule({
            "id": "cap_1", "preceptor_id": "prec_1", "max_students_per_day": 2, "max_students_per_year": 10,
        })
        assert isinstance(rule, CapacityRule)
        with pytest.raises(ValidationError) as exc_info:
            repo.add_capacity_rule({"id": "cap_2", "preceptor_id": "prec_1", "max_students_per_day": 0})
        assert exc_info.value.fields
        with pytest.raises(NotFoundError):
            repo.add_capacity_rule({
                "id": "cap_3", "preceptor_id": "prec_missing",
                "max_students_per_day": 1, "max_students_per_year": 10,
            })

    def test_add_site_capacity_rule(self) -> None:
        repo = make_repository()
        rule = repo.add_site_capacity_rule({
            "id": "sitecap_1", "site_id": "site_valley", "max_students_per_day": 3, "max_students_per_year": 30,
        })
        assert isinstance(rule, SiteCapacityRule)
        assert repo.list_site_capacity_rules("site_valley") == [rule]
        assert repo.list_site_capacity_rules("site_other") == []
        with pytest.raises(ConflictError):
            repo.add_site_capacity_rule(rule)
        with pytest.raises(ValidationError):
            repo.add_site_capacity_rule({"id": "sitecap_2", "site_id": "site_valley", "max_students_per_day": 0})
        with pytest.raises(NotFoundError):
            repo.add_site_capacity_rule(make_site_capacity_rule("site_missing"))

    def test_site_capacity_rules_survive_a_reload(self, tmp_path) -> None:
        repo = make_repository(site_capacity_rules=[make_site_capacity_rule("site_valley", per_day=2)])
        path = tmp_path / "snapshot.json"
        repo.save_to_file(str(path))
        reloaded = InMemoryRepository.from_file(str(path))
        assert reloaded.list_site_capacity_rules() == repo.list_site_capacity_rules()


class TestScenarios:

    def test_unknown_scenario(self) -> None:
        with pytest.raises(KeyError):
            build_scenario("no_such_scenario", MONDAY)

    @pytest.mark.parametrize("name", sorted(SCENARIOS))
    def test_scenario_schedules_without_double_booking(self, name, config) -> None:
        snapshot = build_scenario(name, MONDAY, horizon_days=90)
        repo = InMemoryRepository(snapshot)
        options = make_options(days=90, enable_team_formation=True, enable_fallbacks=True)

        result = SchedulingEngine(repo, config).schedule(
            [s.id for s in snapshot.students], [c.id for c in snapshot.clerkships], options
        )

        per_student_day = Counter((a.student_id, a.date) for a in result.assignments)
        assert all(count == 1 for count in per_student_day.values())
        assert all(options.start_date <= a.date <= options.end_date for a in result.assignments)
        assert result.statistics.total_requirements == len(result.outcomes)
        assert len(repo.list_assignments()) == len(result.assignments)


def test_snapshot_defaults_are_empty() -> None:
    snapshot = make_snapshot()
    assert snapshot.students == []
    assert len(snapshot.health_systems) == 1


def test_package_metadata_references_existing_files() -> None:
    tomllib = pytest.importorskip("tomllib")
    root = Path(__file__).resolve().parent.parent
    with open(root / "pyproject.toml", "rb") as f:
        project = tomllib.load(f)["project"]

    readme = project.get("readme")
    if readme is not None:
        assert (root / readme).is_file()
        assert readme != "SPEC_FULL.md"
    module = project["scripts"]["clerkship-scheduler"].split(":")[0]
    assert (root / f"{module}.py").is_file()
