"""
agentplan plan - Create, lock, amend and archive plans.
"""

import json
import logging
import sys

from agentplan.commands.common import (
    EXIT_OK,
    EXIT_USER_ERROR,
    print_statistics,
    print_warnings,
    report_failure,
)
from agentplan.lib.config import get_active_plan
from agentplan.lib.store import PlanStore
from agentplan.workflow.engine import PlanEngine

logger = logging.getLogger(__name__)


def _read_requirements() -> str:
    """Read requirements from stdin until EOF."""
    if sys.stdin.isatty():
        print("Enter the project requirements. Finish with Ctrl+D.")
        print()
    return sys.stdin.read()


def cmd_plan(args, engine: PlanEngine) -> int:
    """
    One command for the whole plan flow.

    No active plan: create one from the description.
    Active draft with PROJECT-PLAN.json: lock it.
    Active draft without it: say what to do next.
    Locked plan: show its status.

    `plan new` and `plan "<requirements>"` always create, so an active plan
    is reported as ActivePlanExists rather than shown.
    """
    creating = args.description is not None or getattr(args, "plan_cmd", None) == "new"
    plan_id = get_active_plan(engine.ctx.root)
    if not creating and plan_id and (engine.ctx.plans_dir / plan_id).is_dir():
        store = PlanStore(engine.ctx, plan_id)
        if store.is_locked():
            print(f"Plan {plan_id} is already locked.")
            return cmd_plan_lock(args, engine)
        if store.plan_file.exists():
            print(f"Found {store.plan_file.name} for {plan_id}, locking it...")
            return cmd_plan_lock(args, engine)
        print(f"Waiting for {store.plan_file}")
        print(f"Write the plan from {store.requirements_file.name}, then run: agentplan plan lock")
        return EXIT_OK

    description = args.description or _read_requirements()
    result = engine.generate_plan(description)
    if not result.ok:
        return report_failure(result)

    print_warnings(result)
    print(f"Plan requirements created: {result.value['planId']}")
    print(f"  {result.value['requirementsFile']}")
    print()
    print("Next steps:")
    print(f"  1. Write {result.value['planFile']}")
    print("  2. Run: agentplan plan lock")
    return EXIT_OK


def cmd_plan_lock(args, engine: PlanEngine) -> int:
    result = engine.lock_plan()
    if not result.ok:
        return report_failure(result)

    print_warnings(result)
    value = result.value
    if not value["alreadyLocked"]:
        print(f"Plan {value['planId']} locked.")
    print()
    print("Plan status:")
    print_statistics(value["statistics"])
    if value["activeTask"]:
        print(f"  Active:      {value['activeTask']}")
    elif not value["alreadyLocked"]:
        print()
        print("Next step: agentplan task next")
    return EXIT_OK


def cmd_plan_archive(args, engine: PlanEngine) -> int:
    result = engine.archive_plan(args.reason or "")
    if not result.ok:
        return report_failure(result)

    print_warnings(result)
    print(f"Archived {result.value['planId']} to {result.value['archivedPath']}")
    print("Run `agentplan plan \"<requirements>\"` to start the next plan.")
    return EXIT_OK


def _parse_value(raw: str):
    """Amendment values are JSON when they parse, plain strings otherwise."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def build_change(args) -> dict | None:
    """Turn `plan amend` arguments into a change dict, or None if incomplete."""
    if args.add:
        task = _parse_value(args.add)
        if not isinstance(task, dict):
            task = {"title": args.add}
        return {"kind": "add", "task": task}
    if args.deprecate:
        return {"kind": "deprecate", "taskId": args.task_id}
    if args.field and args.value is not None:
        return {"kind": "set", "taskId": args.task_id, "field": args.field, "value": _parse_value(args.value)}
    return None


def cmd_plan_amend(args, engine: PlanEngine) -> int:
    """Apply one amendment: --field/--value, --add or --deprecate."""
    if (args.field or args.deprecate) and not args.task_id:
        print("ERROR: A task id is required for --field and --deprecate")
        return EXIT_USER_ERROR
    change = build_change(args)
    if change is None:
        print("ERROR: Nothing to amend. Use --field with --value, --add, or --deprecate")
        return EXIT_USER_ERROR

    result = engine.amend_plan(change, args.reason, amended_by=args.by)
    if not result.ok:
        return report_failure(result)

    print_warnings(result)
    for entry in result.value["entries"]:
        print(f"Amended {entry['taskId']}.{entry['field']}: {json.dumps(entry['oldValue'])} -> "
              f"{json.dumps(entry['newValue'])}")
    return EXIT_OK


def cmd_plan_history(args, engine: PlanEngine) -> int:
    result = engine.history()
    if not result.ok:
        return report_failure(result)

    entries = result.value["entries"]
    if not entries:
        print(f"No amendments to {result.value['planId']}")
        return EXIT_OK

    print(f"{'WHEN':<22} {'TASK':<10} {'FIELD':<20} REASON")
    print("-" * 80)
    for entry in entries:
        by = f" ({entry['amendedBy']})" if entry.get("amendedBy") else ""
        print(f"{entry['timestamp']:<22} {entry['taskId']:<10} {entry['field']:<20} {entry['reason']}{by}")
    print("-" * 80)
    print(f"{len(entries)} amendment(s)")
    if not result.value["consistent"]:
        print("WARNING: replaying the log does not reproduce the current tasks")
        return EXIT_USER_ERROR
    return EXIT_OK
