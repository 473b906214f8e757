"""Dependency validation over a plan's task graph.

Pure functions: nothing here reads or writes the store. Run at lock time
and at amendment time; a bad graph is rejected, never auto-corrected.
"""

from agentplan.lib.errors import CycleDetected, DuplicateTaskId, UnknownDependency
from agentplan.workflow.models import Task, TaskStatus

__all__ = ["validate", "find_cycle", "ready_tasks", "unmet_dependencies", "dependents_of"]


def validate(tasks: list[Task]) -> None:
    """Check the dependency graph is a DAG over existing, unique ids.

    Raises:
        DuplicateTaskId: an id is declared twice
        UnknownDependency: a dependency names a task that doesn't exist
        CycleDetected: the graph has a cycle (full path in the error)
    """
    known: set[str] = set()
    for task in tasks:
        if task.id in known:
            raise DuplicateTaskId(task.id)
        known.add(task.id)

    for task in tasks:
        for dep in task.dependencies:
            if dep not in known:
                raise UnknownDependency(task.id, dep)

    cycle = find_cycle(tasks)
    if cycle:
        raise CycleDetected(cycle)


def find_cycle(tasks: list[Task]) -> list[str] | None:
    """Return the first cycle found as a closed path, e.g. [A, B, A], or None.

    Iterative DFS in declaration order; a back edge to a node still on the
    stack closes the cycle.
    """
    graph = {task.id: [d for d in task.dependencies] for task in tasks}
    visiting, done = 1, 2
    marks: dict[str, int] = {}

    for root in graph:
        if root in marks:
            continue
        path = [root]
        marks[root] = visiting
        stack = [iter(graph[root])]
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                marks[path.pop()] = done
                stack.pop()
                continue
            if dep not in graph:
                continue
            state = marks.get(dep)
            if state == visiting:
                return path[path.index(dep):] + [dep]
            if state is None:
                marks[dep] = visiting
                path.append(dep)
                stack.append(iter(graph[dep]))
    return None


def unmet_dependencies(task: Task, tasks: list[Task]) -> list[str]:
    """Dependencies of task that are not completed, in declared order."""
    status = {t.id: t.status for t in tasks}
    return [d for d in task.dependencies if status.get(d) != TaskStatus.COMPLETED.value]


def ready_tasks(tasks: list[Task]) -> list[Task]:
    """Pending tasks whose dependencies are all completed.

    Order is plan declaration order, never id order.
    """
    return [
        task for task in tasks
        if task.status == TaskStatus.PENDING.value
        and not task.deprecated
        and not unmet_dependencies(task, tasks)
    ]


def dependents_of(task_id: str, tasks: list[Task]) -> list[str]:
    """Ids of non-deprecated tasks that depend on task_id."""
    return [t.id for t in tasks if task_id in t.dependencies and not t.deprecated]
