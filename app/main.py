import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.cache.layer import CacheLayer
from app.core.config import Settings, get_settings
from app.core.errors import (
    StoreUnavailableError,
    TaskNotFoundError,
    TaskValidationError,
)
from app.core.logging import setup_logging
from app.database import Database
from app.routers import health, tasks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    database: Database = app.state.database
    cache: CacheLayer = app.state.cache

    database.connect()
    if settings.auto_create_tables:
        await database.create_tables()
    await cache.init_cache()
    logger.info("Task API started")
    try:
        yield
    finally:
        await cache.close()
        await database.close()
        logger.info("Task API stopped")


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    cache: CacheLayer | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Task Management API",
        description="Async task management API with PostgreSQL and a Redis read-through cache",
        swagger_ui_parameters={"displayRequestDuration": True},
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database or Database(settings)
    app.state.cache = cache or CacheLayer(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router)
    app.include_router(tasks.router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to Task Management API",
            "docs": "/docs",
            "version": "1.0.0",
        }

    return app


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(TaskValidationError)
    async def validation_error(request: Request, exc: TaskValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)}
        )

    @app.exception_handler(TaskNotFoundError)
    async def not_found(request: Request, exc: TaskNotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"error": "Todo not found"}
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Database unavailable"},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.info(f"404: {request.method} {request.url.path}")
            return JSONResponse(
                status_code=exc.status_code, content={"error": "Endpoint not found"}
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


app = create_app()
