import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.cache.store import CacheStore, build_cache_store
from app.core.config import get_settings
from app.core.decorators import drain_background_tasks
from app.core.errors import CacheUnavailableError, NotFoundError
from app.database import create_db_and_tables
from app.dependencies import get_cache_store
from app.routers import activities, projects, tasks, users

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.create_tables:
        await create_db_and_tables()
    app.state.cache_store = await build_cache_store(settings)
    yield
    # let in-flight notifications finish before the loop goes away
    await drain_background_tasks(timeout=settings.shutdown_grace_seconds)
    await app.state.cache_store.close()


app = FastAPI(
    title="Task Management API",
    description="Async task management API with read-through caching and activity history",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(tasks.router)
app.include_router(projects.router)
app.include_router(users.router)
app.include_router(users.tags_router)
app.include_router(activities.router)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {
        "message": "Welcome to Task Management API",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check(store: CacheStore = Depends(get_cache_store)):
    try:
        cache_ok = await store.ping()
    except CacheUnavailableError as e:
        logger.error(f"Cache health check failed: {e}")
        cache_ok = False
    return {
        "status": "healthy",
        "cache": {"backend": store.backend, "reachable": cache_ok},
    }
