"""Shared output helpers for command handlers."""

from agentplan.lib.result import Result

# Exit codes
EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_UNEXPECTED = 2

# Error categories that mean the stored state itself is broken
_UNEXPECTED_CATEGORIES = {"corruption"}


def print_warnings(result: Result) -> None:
    for warning in result.warnings:
        print(f"WARNING: {warning}")


def report_failure(result: Result) -> int:
    """Print a failed Result and return its exit code."""
    print_warnings(result)
    print(f"ERROR: [{result.kind}] {result.error.message}")
    if result.category in _UNEXPECTED_CATEGORIES:
        print("The plan files disagree with each other. Fix them by hand; nothing was changed.")
        return EXIT_UNEXPECTED
    if result.category == "concurrency":
        print("Another agentplan command is running in this project. Retry shortly.")
    return EXIT_USER_ERROR


def print_statistics(stats: dict) -> None:
    print(f"  Total:       {stats.get('totalTasks', 0)}")
    print(f"  Completed:   {stats.get('completed', 0)}")
    print(f"  In progress: {stats.get('inProgress', 0)}")
    print(f"  Pending:     {stats.get('pending', 0)}")
    print(f"  Blocked:     {stats.get('blocked', 0)}")
    if stats.get("deprecated"):
        print(f"  Deprecated:  {stats['deprecated']}")


def print_task(task: dict) -> None:
    print(f"{task['id']}: {task['title']}")
    print(f"  Status: {task['status']}")
    print(f"  Phase:  {task['phase']}")
    if task.get("estimatedHours") is not None:
        print(f"  Hours:  {task['estimatedHours']}")
    if task.get("dependencies"):
        print(f"  Depends on: {', '.join(task['dependencies'])}")
    if task.get("externalIssue") is not None:
        print(f"  External: {task['externalIssue']}")
    if task.get("description"):
        print()
        print(f"  {task['description']}")
    if task.get("completionCriteria"):
        print()
        print("  Completion criteria:")
        for criterion in task["completionCriteria"]:
            print(f"    - {criterion}")
