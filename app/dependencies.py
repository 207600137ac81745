from fastapi import Depends, Request
from typing_extensions import Annotated

from app.cache.layer import CacheLayer
from app.database import Database
from app.repositories.task_repository import TaskRepository
from app.services.task_service import TaskService


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_cache(request: Request) -> CacheLayer:
    return request.app.state.cache


def get_task_service(
    database: Annotated[Database, Depends(get_database)],
    cache: Annotated[CacheLayer, Depends(get_cache)],
    request: Request,
) -> TaskService:
    return TaskService(
        TaskRepository(database.session_factory),
        cache,
        cache_ttl=request.app.state.settings.cache_ttl_seconds,
    )


TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
