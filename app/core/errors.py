class TaskServiceError(Exception):
    """Base class for errors raised by the task service."""


class TaskValidationError(TaskServiceError):
    """Rejected input, e.g. a missing or blank title."""


class TaskNotFoundError(TaskServiceError):
    def __init__(self, task_id: int):
        super().__init__(f"Task with id {task_id} not found")
        self.task_id = task_id


class StoreError(TaskServiceError):
    """Record store failure. Always fatal to the request."""


class StoreUnavailableError(StoreError):
    """Connection, timeout or pool exhaustion talking to the record store."""


class StoreConstraintError(StoreError):
    """The record store rejected a row (integrity violation)."""


class CacheUnavailableError(TaskServiceError):
    """
    The cache backend could not be reached.

    Callers decide how to degrade: reads fall through to the store,
    invalidations are logged and skipped.
    """
