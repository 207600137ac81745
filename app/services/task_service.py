import logging

from pydantic import TypeAdapter

from app.cache.decorators import async_cached, async_cached_expire
from app.cache.layer import CacheLayer
from app.core.errors import TaskNotFoundError, TaskValidationError
from app.models import TaskResponse
from app.repositories.task_repository import TaskRepository

logger = logging.getLogger(__name__)

# Single cache entry holding the complete ordered list. Per-task entries
# are never cached so every write invalidates exactly one key.
TASKS_ALL_KEY = "tasks:all"

_task_list = TypeAdapter(list[TaskResponse])


def _clean_title(title: str | None) -> str:
    if title is None or not title.strip():
        raise TaskValidationError("Title is required")
    return title.strip()


class TaskService:
    """
    Mediates every read and write between callers, the cache and the store.

    Writes commit to the store first and then evict the cached list; the
    cached list is never patched in place. Holds no mutable state of its own.
    """

    def __init__(self, repository: TaskRepository, cache: CacheLayer, cache_ttl: int):
        self.repository = repository
        self.cache = cache
        self.cache_ttl = cache_ttl

    @async_cached(TASKS_ALL_KEY, _task_list)
    async def list_tasks(self) -> list[TaskResponse]:
        tasks = await self.repository.list_all()
        logger.info(f"Loaded {len(tasks)} tasks from store")
        return [TaskResponse.model_validate(task) for task in tasks]

    async def get_task(self, task_id: int) -> TaskResponse:
        task = await self.repository.get(task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return TaskResponse.model_validate(task)

    @async_cached_expire(TASKS_ALL_KEY)
    async def create_task(
        self, title: str | None, description: str | None = None
    ) -> TaskResponse:
        title = _clean_title(title)
        task = await self.repository.insert(title, description or None)
        logger.info(f"Created task {task.id}")
        return TaskResponse.model_validate(task)

    @async_cached_expire(TASKS_ALL_KEY)
    async def update_task(
        self,
        task_id: int,
        title: str | None,
        description: str | None = None,
        completed: bool | None = False,
    ) -> TaskResponse:
        title = _clean_title(title)
        task = await self.repository.update(
            task_id, title, description or None, bool(completed)
        )
        if not task:
            raise TaskNotFoundError(task_id)
        logger.info(f"Updated task {task_id}")
        return TaskResponse.model_validate(task)

    @async_cached_expire(TASKS_ALL_KEY)
    async def delete_task(self, task_id: int) -> None:
        deleted = await self.repository.delete(task_id)
        if deleted is None:
            raise TaskNotFoundError(task_id)
        logger.info(f"Deleted task {task_id}")
