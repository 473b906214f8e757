"""
agentplan task - Move tasks through their lifecycle.
"""

from agentplan.commands.common import EXIT_OK, print_statistics, print_task, print_warnings, report_failure
from agentplan.workflow.engine import PlanEngine


def _started(result) -> int:
    print_warnings(result)
    task = result.value["task"]
    if result.value["changed"]:
        print(f"Started {task['id']}")
    else:
        print(f"{task['id']} is already in progress")
    print()
    print_task(task)
    print()
    print("When done: agentplan task done")
    return EXIT_OK


def cmd_task_start(args, engine: PlanEngine) -> int:
    result = engine.start_task(args.task_id)
    if not result.ok:
        return report_failure(result)
    return _started(result)


def cmd_task_next(args, engine: PlanEngine) -> int:
    """Start the first ready task."""
    result = engine.start_next()
    if not result.ok:
        return report_failure(result)
    if result.value["task"] is None:
        print_warnings(result)
        if result.value["allCompleted"]:
            print("All tasks completed.")
        else:
            print("No task is ready. Remaining tasks are blocked or waiting on dependencies.")
        print_statistics(result.value["statistics"])
        return EXIT_OK
    return _started(result)


def cmd_task_done(args, engine: PlanEngine) -> int:
    """Complete the active task."""
    result = engine.complete_active_task(comment=args.comment)
    if not result.ok:
        return report_failure(result)

    print_warnings(result)
    print(f"Completed {result.value['task']['id']}")
    ready = result.value["ready"]
    if ready:
        print(f"Ready next: {', '.join(ready)}")
        print("Run: agentplan task next")
    print()
    print_statistics(result.value["statistics"])
    return EXIT_OK


def cmd_task_reset(args, engine: PlanEngine) -> int:
    result = engine.reset_task(args.task_id, force=args.force)
    if not result.ok:
        return report_failure(result)

    print_warnings(result)
    task = result.value["task"]
    if result.value["changed"]:
        print(f"Reset {task['id']} to {task['status']}")
    else:
        print(f"{task['id']} is already {task['status']}")
    return EXIT_OK


def cmd_task_status(args, engine: PlanEngine) -> int:
    """Show one task, or the active task when no id is given."""
    task_id = args.task_id
    if not task_id:
        status = engine.status()
        if not status.ok:
            return report_failure(status)
        task_id = status.value.get("activeTask")
        if not task_id:
            print("No task is in progress. Run: agentplan task next")
            return EXIT_OK

    result = engine.show_task(task_id)
    if not result.ok:
        return report_failure(result)

    print_task(result.value["task"])
    if result.value["unmetDependencies"]:
        print(f"  Waiting on: {', '.join(result.value['unmetDependencies'])}")
    if result.value["dependents"]:
        print(f"  Needed by:  {', '.join(result.value['dependents'])}")
    return EXIT_OK


def cmd_task_ready(args, engine: PlanEngine) -> int:
    result = engine.ready()
    if not result.ok:
        return report_failure(result)

    if not result.value:
        print("No tasks are ready")
        return EXIT_OK
    for task in result.value:
        print(f"{task['id']:<10} {task['phase']:<15} {task['title']}")
    return EXIT_OK
