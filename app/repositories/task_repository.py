import asyncio
import logging
from contextlib import contextmanager

from sqlalchemy import delete, exc as sa_exc, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.errors import StoreConstraintError, StoreError, StoreUnavailableError
from app.models import Task

logger = logging.getLogger(__name__)

# Connectivity failures only; anything else the driver raises is a StoreError
_UNAVAILABLE = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
    asyncio.TimeoutError,
    OSError,
)


@contextmanager
def _translate_store_errors(operation: str):
    """Map driver/pool failures onto the store error taxonomy."""
    try:
        yield
    except sa_exc.IntegrityError as e:
        logger.error(f"Store constraint violation during {operation}: {e}")
        raise StoreConstraintError(str(e.orig)) from e
    except _UNAVAILABLE as e:
        logger.error(f"Store unavailable during {operation}: {e}")
        raise StoreUnavailableError(f"{operation} failed: {e}") from e
    except (sa_exc.DBAPIError, OverflowError) as e:
        logger.error(f"Store rejected {operation}: {e}")
        raise StoreError(f"{operation} failed: {e}") from e


class TaskRepository:
    """
    Record store access for tasks.

    Every method opens its own short-lived session from the shared pool.
    "No row matched" is reported as None, never as an exception. Updates and
    deletes are single UPDATE/DELETE ... RETURNING statements, so a row
    removed by a concurrent writer simply comes back as None.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_all(self) -> list[Task]:
        query = select(Task).order_by(Task.created_at.desc(), Task.id.desc())
        with _translate_store_errors("list"):
            async with self._session_factory() as session:
                result = await session.exec(query)
                return list(result.all())

    async def get(self, task_id: int) -> Task | None:
        with _translate_store_errors("get"):
            async with self._session_factory() as session:
                return await session.get(Task, task_id)

    async def insert(self, title: str, description: str | None) -> Task:
        task = Task(title=title, description=description)
        with _translate_store_errors("insert"):
            async with self._session_factory() as session:
                session.add(task)
                await session.commit()
                await session.refresh(task)
        return task

    async def update(
        self, task_id: int, title: str, description: str | None, completed: bool
    ) -> Task | None:
        statement = (
            update(Task)
            .where(Task.id == task_id)
            .values(title=title, description=description, completed=completed)
            .returning(Task)
        )
        with _translate_store_errors("update"):
            async with self._session_factory() as session:
                result = await session.exec(statement)
                task = result.scalar_one_or_none()
                await session.commit()
                return task

    async def delete(self, task_id: int) -> int | None:
        statement = delete(Task).where(Task.id == task_id).returning(Task.id)
        with _translate_store_errors("delete"):
            async with self._session_factory() as session:
                result = await session.exec(statement)
                deleted = result.scalar_one_or_none()
                await session.commit()
                return deleted
