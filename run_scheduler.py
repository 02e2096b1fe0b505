"""
Main Execution Script for the Clerkship Scheduler.
Loads a snapshot (JSON file or built-in scenario), runs the engine and prints
a report. Optionally exports the result for a dashboard.
"""

import os
import sys
import json
import logging
import argparse
from datetime import date, timedelta
from typing import List, Optional

# Add current directory to path so imports work
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from generators.scenarios import SCENARIOS, build_scenario
from scheduler.config import get_config
from scheduler.engine import SchedulingEngine
from scheduler.errors import SchedulingError
from scheduler.repository import InMemoryRepository
from scheduler.suggestions import generate_suggestions
from scheduler.violations import group_by_constraint
from models import SchedulingResult

logger = logging.getLogger("Main")

DEFAULT_HORIZON_DAYS = 90


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Schedule clerkship rotations for a student cohort.")

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--snapshot", help="Path to a snapshot JSON file")
    source.add_argument("--scenario", choices=sorted(SCENARIOS), help="Built-in deterministic scenario")

    parser.add_argument("--start", type=date.fromisoformat, default=None, help="Window start (YYYY-MM-DD), default today")
    parser.add_argument("--end", type=date.fromisoformat, default=None, help="Window end (YYYY-MM-DD), inclusive")
    parser.add_argument("--students", default=None, help="Comma-separated student ids (default: all)")
    parser.add_argument("--clerkships", default=None, help="Comma-separated clerkship ids (default: all)")

    parser.add_argument("--teams", action="store_true", help="Enable team formation")
    parser.add_argument("--fallbacks", action="store_true", help="Enable fallback preceptors")
    parser.add_argument("--optimize", action="store_true", help="Re-rank candidates by soft preferences")
    parser.add_argument("--max-retries", type=int, default=None, help="Retry passes over unfinished requirements")
    parser.add_argument("--dry-run", action="store_true", help="Compute without persisting assignments")

    parser.add_argument("--export", default=None, help="Write the result as dashboard JSON to this path")
    parser.add_argument("--save-snapshot", default=None, help="Write the snapshot (with saved assignments) to this path")
    return parser.parse_args(argv)


def export_dashboard_data(result: SchedulingResult, filename: str) -> None:
    """
    Serializes the scheduling result into a JSON format for the frontend.
    """
    logger.info(f"💾 Exporting dashboard data to {filename}...")

    data = {
        "statistics": result.statistics.model_dump(mode='json'),
        "schedule": {},
        "failures": {},
        "unmet_requirements": [u.model_dump(mode='json') for u in result.unmet_requirements],
        "pending_approvals": [p.model_dump(mode='json') for p in result.pending_approvals],
    }

    # 1. Schedule (Grouped by Date)
    for slot in sorted(result.assignments, key=lambda a: (a.date, a.student_id)):
        data["schedule"].setdefault(slot.date.isoformat(), []).append(slot.model_dump(mode='json'))

    # 2. Failures (Grouped by Date; undated ones under "unscheduled")
    for v in result.violations:
        d_key = v.assignment.date.isoformat() if v.assignment.date else "unscheduled"
        data["failures"].setdefault(d_key, []).append({
            "student_id": v.assignment.student_id,
            "clerkship_id": v.assignment.clerkship_id,
            "preceptor_id": v.assignment.preceptor_id,
            "reason": v.reason,
            "type": v.constraint_name,
        })

    with open(filename, 'w') as f:
        json.dump(data, f, indent=2)
    logger.info("✅ Dashboard data exported.")


def print_report(result: SchedulingResult) -> None:
    stats = result.statistics

    print("\n" + "=" * 50)
    print("📊 FINAL EXECUTION REPORT")
    print("=" * 50)
    print(f"Students:              {stats.total_students} "
          f"({stats.fully_scheduled_students} full / {stats.partially_scheduled_students} partial / "
          f"{stats.unscheduled_students} none)")
    print(f"Requirements:          {stats.satisfied_requirements}/{stats.total_requirements} satisfied "
          f"({stats.completion_rate}%)")
    print(f"Assignments:           {stats.total_assignments} "
          f"({stats.fallback_assignments} fallback, {stats.pending_approvals} pending approval)")
    print(f"Preceptors utilized:   {stats.preceptors_utilized} "
          f"(avg {stats.average_assignments_per_preceptor} assignments)")
    print(f"Violations:            {stats.total_violations}")
    if result.dry_run:
        print("Mode:                  dry run (nothing persisted)")

    if result.unmet_requirements:
        print("\n🔍 UNMET REQUIREMENTS (Top 20)")
        for unmet in result.unmet_requirements[:20]:
            label = unmet.elective_id or unmet.requirement_type.value
            print(f"❌ {unmet.student_id} / {unmet.clerkship_id} / {label}: "
                  f"{unmet.assigned_days}/{unmet.required_days} day(s), {unmet.missing_days} missing")
            print(f"   Reason: {unmet.reason}")

    stats_by_constraint = group_by_constraint(result.violations)
    if stats_by_constraint:
        print("\n📈 TOP VIOLATIONS")
        ranked = sorted(stats_by_constraint.values(), key=lambda s: s.count, reverse=True)
        for entry in ranked[:10]:
            print(f"   {entry.constraint_name:<28} {entry.count:>5}  "
                  f"({len(entry.affected_students)} student(s))")

        print("\n💡 SUGGESTIONS")
        for suggestion in generate_suggestions(stats_by_constraint):
            print(f"   [{suggestion.impact.upper()}] {suggestion.title}: {suggestion.action}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = get_config()
    configure_logging(config.log_level)

    logger.info("🚀 Starting Clerkship Scheduler...")
    start_date = args.start or date.today()
    end_date = args.end or start_date + timedelta(days=DEFAULT_HORIZON_DAYS - 1)

    try:
        # --- PHASE 1: DATA ACQUISITION (Snapshot vs. Scenario) ---
        if args.snapshot:
            repository = InMemoryRepository.from_file(args.snapshot)
        else:
            horizon = (end_date - start_date).days + 1
            repository = InMemoryRepository(build_scenario(args.scenario, start_date, max(horizon, 1)))

        snapshot = repository.to_snapshot()
        student_ids = args.students.split(",") if args.students else [s.id for s in snapshot.students]
        clerkship_ids = args.clerkships.split(",") if args.clerkships else [c.id for c in snapshot.clerkships]

        # --- PHASE 2: SCHEDULING ---
        engine = SchedulingEngine(repository, config)
        result = engine.schedule(student_ids, clerkship_ids, {
            "start_date": start_date,
            "end_date": end_date,
            "enable_team_formation": args.teams,
            "enable_fallbacks": args.fallbacks,
            "enable_optimization": args.optimize,
            "max_retries_per_student": args.max_retries,
            "dry_run": args.dry_run,
        })
    except SchedulingError as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        return 2

    # --- PHASE 3: REPORTING ---
    print_report(result)

    # --- PHASE 4: EXPORT ---
    if args.export:
        export_dashboard_data(result, args.export)
    if args.save_snapshot:
        repository.save_to_file(args.save_snapshot)

    print("\n✅ Scheduling Complete." if result.success else "\n⚠️ Scheduling finished with unmet requirements.")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
