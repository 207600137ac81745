import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the async engine and session factory for the record store.

    Created once per process; connect() at startup and close() at shutdown.
    """

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    def connect(self):
        if self.engine is not None:
            return

        settings = self._settings
        url = make_url(settings.database_url)

        engine_kwargs = {"echo": False, "pool_pre_ping": True}
        # SQLite pools don't take sizing arguments
        if url.get_backend_name() != "sqlite":
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                pool_recycle=settings.db_pool_recycle,
            )

        self.engine = create_async_engine(url, **engine_kwargs)

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(f"Database engine created for {url.render_as_string(hide_password=True)}")

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def close(self):
        """Dispose of the connection pool."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database connections closed")
            self.engine = None
            self.session_factory = None
