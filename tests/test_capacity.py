"""Tests for capacity rule resolution and ledger-based capacity checks."""

from datetime import timedelta

import pydantic
import pytest

from models import CapacityRule, RequirementType, SchedulingSettings, SiteCapacityRule
from scheduler.capacity import CHECK_BLOCK, CHECK_DAILY, CHECK_YEARLY, CapacityResolver, SiteCapacityResolver
from scheduler.errors import ValidationError
from scheduler.state import SchedulerState

from .conftest import (
    MONDAY,
    make_assignment,
    make_capacity_rule,
    make_preceptor,
    make_repository,
    make_site_capacity_rule,
)

SETTINGS = SchedulingSettings(max_students_per_day=2, max_students_per_year=3)


class TestCapacityRuleModel:

    def test_yearly_below_daily_is_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            CapacityRule(id="cap", preceptor_id="prec_1", max_students_per_day=3, max_students_per_year=2)

    def test_block_limits_must_be_set_together(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            CapacityRule(
                id="cap", preceptor_id="prec_1",
                max_students_per_day=1, max_students_per_year=10,
                max_students_per_block=1,
            )

    def test_repository_reports_invalid_rule_fields(self) -> None:
        repo = make_repository(preceptors=[make_preceptor("prec_1")])
        with pytest.raises(ValidationError) as exc_info:
            repo.add_capacity_rule({
                "id": "cap", "preceptor_id": "prec_1",
                "max_students_per_day": 0, "max_students_per_year": 10,
            })
        assert "max_students_per_day" in exc_info.value.fields


class TestRuleResolution:

    def test_most_specific_rule_wins(self) -> None:
        resolver = CapacityResolver([
            make_capacity_rule("prec_1", per_day=5, rule_id="general"),
            make_capacity_rule("prec_1", per_day=4, rule_id="by_type", requirement_type=RequirementType.INPATIENT),
            make_capacity_rule("prec_1", per_day=3, rule_id="by_clerkship", clerkship_id="clk_fm"),
            make_capacity_rule(
                "prec_1", per_day=2, rule_id="exact",
                clerkship_id="clk_fm", requirement_type=RequirementType.INPATIENT,
            ),
        ])
        assert resolver.resolve_rule("prec_1", "clk_fm", RequirementType.INPATIENT).id == "exact"
        assert resolver.resolve_rule("prec_1", "clk_fm", RequirementType.OUTPATIENT).id == "by_clerkship"
        assert resolver.resolve_rule("prec_1", "clk_im", RequirementType.INPATIENT).id == "by_type"
        assert resolver.resolve_rule("prec_1", "clk_im", RequirementType.OUTPATIENT).id == "general"

    def test_ties_keep_the_first_rule(self) -> None:
        resolver = CapacityResolver([
            make_capacity_rule("prec_1", rule_id="first"),
            make_capacity_rule("prec_1", rule_id="second"),
        ])
        assert resolver.resolve_rule("prec_1").id == "first"

    def test_settings_apply_without_a_rule(self) -> None:
        effective = CapacityResolver([]).effective("prec_1", "clk_fm", RequirementType.OUTPATIENT, SETTINGS)
        assert effective.max_students_per_day == 2
        assert effective.source == "default"


class TestCapacityCheck:

    def test_daily_limit_counts_ledger_bookings(self) -> None:
        ledger = SchedulerState([make_assignment("stu_1", "prec_1", MONDAY)])
        resolver = CapacityResolver([make_capacity_rule("prec_1", per_day=1)])
        check = resolver.check("prec_1", MONDAY, ledger, "stu_2", "clk_fm", RequirementType.OUTPATIENT, SETTINGS)
        assert not check.has_capacity
        assert check.check_type == CHECK_DAILY
        assert check.remaining == 0

        next_day = resolver.check(
            "prec_1", MONDAY + timedelta(days=1), ledger, "stu_2", "clk_fm", RequirementType.OUTPATIENT, SETTINGS
        )
        assert next_day.has_capacity

    def test_yearly_limit_counts_distinct_students(self) -> None:
        ledger = SchedulerState([
            make_assignment(f"stu_{i}", "prec_1", MONDAY + timedelta(days=i)) for i in range(3)
        ])
        resolver = CapacityResolver([])
        later = MONDAY + timedelta(days=10)

        newcomer = resolver.check("prec_1", later, ledger, "stu_9", "clk_fm", RequirementType.OUTPATIENT, SETTINGS)
        assert not newcomer.has_capacity
        assert newcomer.check_type == CHECK_YEARLY

        returning = resolver.check("prec_1", later, ledger, "stu_0", "clk_fm", RequirementType.OUTPATIENT, SETTINGS)
        assert returning.has_capacity

    def test_block_limit_applies_to_numbered_blocks(self) -> None:
        booked = make_assignment("stu_1", "prec_1", MONDAY).model_copy(update={"block_number": 1})
        ledger = SchedulerState([booked])
        resolver = CapacityResolver([
            make_capacity_rule("prec_1", per_day=3, max_students_per_block=1, max_blocks_per_year=10),
        ])
        day = MONDAY + timedelta(days=1)
        check = resolver.check(
            "prec_1", day, ledger, "stu_2", "clk_fm", RequirementType.OUTPATIENT, SETTINGS, block_number=1
        )
        assert not check.has_capacity
        assert check.check_type == CHECK_BLOCK

        other_block = resolver.check(
            "prec_1", day, ledger, "stu_2", "clk_fm", RequirementType.OUTPATIENT, SETTINGS, block_number=2
        )
        assert other_block.has_capacity

    def test_remaining_reflects_bookings(self) -> None:
        ledger = SchedulerState()
        resolver = CapacityResolver([make_capacity_rule("prec_1", per_day=3)])
        ledger.add_booking(make_assignment("stu_1", "prec_1", MONDAY))
        check = resolver.check("prec_1", MONDAY, ledger, "stu_2", "clk_fm", RequirementType.OUTPATIENT, SETTINGS)
        assert check.has_capacity
        assert check.current_count == 1
        assert check.remaining == 2


class TestSiteCapacity:

    def test_site_rule_validates_like_preceptor_rules(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            SiteCapacityRule(id="site_cap", site_id="site_valley", max_students_per_day=4, max_students_per_year=2)

    def test_most_specific_site_rule_wins(self) -> None:
        resolver = SiteCapacityResolver([
            make_site_capacity_rule("site_valley", per_day=6, rule_id="general"),
            make_site_capacity_rule("site_valley", per_day=4, rule_id="by_clerkship", clerkship_id="clk_fm"),
            make_site_capacity_rule(
                "site_valley", per_day=2, rule_id="exact",
                clerkship_id="clk_fm", requirement_type=RequirementType.INPATIENT,
            ),
            make_site_capacity_rule("site_river", per_day=1, rule_id="other_site"),
        ])
        assert resolver.resolve_rule("site_valley", "clk_fm", RequirementType.INPATIENT).id == "exact"
        assert resolver.resolve_rule("site_valley", "clk_fm", RequirementType.OUTPATIENT).id == "by_clerkship"
        assert resolver.resolve_rule("site_valley", "clk_im", RequirementType.OUTPATIENT).id == "general"
        assert resolver.resolve_rule("site_north") is None

    def test_unbounded_site_has_no_check(self) -> None:
        resolver = SiteCapacityResolver([make_site_capacity_rule("site_valley")])
        assert resolver.check("site_river", MONDAY, SchedulerState(), "stu_1", "clk_fm", None) is None

    def test_daily_limit_counts_every_preceptor_at_the_site(self) -> None:
        resolver = SiteCapacityResolver([make_site_capacity_rule("site_valley", per_day=2)])
        ledger = SchedulerState([
            make_assignment("stu_1", "prec_1", MONDAY, site_id="site_valley"),
            make_assignment("stu_2", "prec_2", MONDAY, site_id="site_valley"),
            make_assignment("stu_3", "prec_3", MONDAY, site_id="site_river"),
        ])
        check = resolver.check("site_valley", MONDAY, ledger, "stu_4", "clk_fm", None)
        assert not check.has_capacity
        assert check.check_type == CHECK_DAILY
        assert check.reason.startswith("Site at daily capacity")
        assert resolver.check("site_valley", MONDAY + timedelta(days=1), ledger, "stu_4", "clk_fm", None).has_capacity

    def test_yearly_limit_counts_distinct_students_at_the_site(self) -> None:
        resolver = SiteCapacityResolver([make_site_capacity_rule("site_valley", per_day=1, per_year=1)])
        ledger = SchedulerState([make_assignment("stu_1", "prec_1", MONDAY, site_id="site_valley")])
        tuesday = MONDAY + timedelta(days=1)
        assert resolver.check("site_valley", tuesday, ledger, "stu_1", "clk_fm", None).has_capacity
        refused = resolver.check("site_valley", tuesday, ledger, "stu_2", "clk_fm", None)
        assert not refused.has_capacity
        assert refused.check_type == CHECK_YEARLY
