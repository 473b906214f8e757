"""
Error taxonomy for agentplan.

Every error carries a ``kind`` (the violated invariant) and the concrete
entity involved, so the CLI can name both without parsing messages.

Inner layers (store, validator, state machine) raise these. The engine
catches them and turns them into ``Result`` failures; only the CLI exits.
"""


class PlanError(Exception):
    """Base class for all agentplan errors."""

    category = "error"
    kind = "PlanError"

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)


# --- ValidationError: rejected before any write ---

class ValidationError(PlanError):
    category = "validation"
    kind = "ValidationError"


class SchemaInvalid(ValidationError):
    kind = "SchemaInvalid"

    def __init__(self, schema_name: str, errors: list[str]):
        self.schema_name = schema_name
        self.errors = errors
        super().__init__(
            f"[{schema_name}] " + "; ".join(errors),
            schema=schema_name,
            errors=errors,
        )


class CycleDetected(ValidationError):
    kind = "CycleDetected"

    def __init__(self, path: list[str]):
        self.path = path
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(path)}",
            path=path,
        )


class UnknownDependency(ValidationError):
    kind = "UnknownDependency"

    def __init__(self, task_id: str, missing_id: str):
        self.task_id = task_id
        self.missing_id = missing_id
        super().__init__(
            f"Task {task_id} depends on unknown task {missing_id}",
            task_id=task_id,
            missing_id=missing_id,
        )


class DuplicateTaskId(ValidationError):
    kind = "DuplicateTaskId"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task id {task_id} is declared more than once", task_id=task_id)


class AmendmentRejected(ValidationError):
    kind = "AmendmentRejected"

    def __init__(self, message: str, task_id: str | None = None):
        self.task_id = task_id
        super().__init__(message, task_id=task_id)


# --- StateConflictError: rejected before any write ---

class StateConflictError(PlanError):
    category = "state_conflict"
    kind = "StateConflictError"


class TaskAlreadyActive(StateConflictError):
    kind = "TaskAlreadyActive"

    def __init__(self, active_id: str):
        self.active_id = active_id
        super().__init__(f"Task {active_id} is already in progress", active_id=active_id)


class UnmetDependencies(StateConflictError):
    kind = "UnmetDependencies"

    def __init__(self, task_id: str, unmet: list[str]):
        self.task_id = task_id
        self.unmet = unmet
        super().__init__(
            f"Task {task_id} has unmet dependencies: {', '.join(unmet)}",
            task_id=task_id,
            unmet=unmet,
        )


class TaskAlreadyCompleted(StateConflictError):
    kind = "TaskAlreadyCompleted"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} is already completed", task_id=task_id)


class InvalidTransition(StateConflictError):
    kind = "InvalidTransition"

    def __init__(self, task_id: str, from_state: str, to_state: str, hint: str = ""):
        self.task_id = task_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition for {task_id}: {from_state} -> {to_state}"
            + (f" ({hint})" if hint else ""),
            task_id=task_id,
            from_state=from_state,
            to_state=to_state,
        )


class NoActiveTask(StateConflictError):
    kind = "NoActiveTask"

    def __init__(self):
        super().__init__("No task is currently in progress")


class ActivePlanExists(StateConflictError):
    kind = "ActivePlanExists"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(
            f"Plan {plan_id} is still active; lock or archive it first",
            plan_id=plan_id,
        )


# --- NotFoundError: surfaced immediately ---

class NotFoundError(PlanError):
    category = "not_found"
    kind = "NotFoundError"


class NoActivePlan(NotFoundError):
    kind = "NoActivePlan"

    def __init__(self):
        super().__init__("No active plan found")


class PlanNotFound(NotFoundError):
    kind = "PlanNotFound"

    def __init__(self, plan_id: str, path: str = ""):
        self.plan_id = plan_id
        super().__init__(
            f"Plan {plan_id} not found" + (f" ({path})" if path else ""),
            plan_id=plan_id,
        )


class PlanNotLocked(NotFoundError):
    kind = "PlanNotLocked"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Plan {plan_id} is not locked yet", plan_id=plan_id)


class TrackerMissing(NotFoundError):
    kind = "TrackerMissing"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Task tracker not found for plan {plan_id}", plan_id=plan_id)


class TaskNotFound(NotFoundError):
    kind = "TaskNotFound"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}", task_id=task_id)


# --- Everything else ---

class CorruptionError(PlanError):
    """Persisted state violates an invariant. Never repaired silently."""

    category = "corruption"
    kind = "CorruptionError"


class ConcurrentModificationError(PlanError):
    """Another invocation holds the project lock. Safe to retry."""

    category = "concurrency"
    kind = "ConcurrentModificationError"


class ExternalMirrorError(PlanError):
    """Issue tracker call failed. Logged as a warning, never fatal."""

    category = "external"
    kind = "ExternalMirrorError"
