from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from app.cache.service import (
    ProjectCache,
    TaskCache,
    project_cache_config,
    task_cache_config,
)
from app.cache.store import CacheStore
from app.core.config import Settings, get_settings
from app.database import get_db, get_session_factory
from app.services.activity_service import ActivityService
from app.services.notifications import NotificationService
from app.services.project_service import ProjectService
from app.services.task_service import TaskService


def get_cache_store(request: Request) -> CacheStore:
    return request.app.state.cache_store


def get_notifier(settings: Settings = Depends(get_settings)) -> NotificationService:
    return NotificationService(delay_seconds=settings.notification_delay_seconds)


def get_activity_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ActivityService:
    return ActivityService(session_factory)


def get_task_service(
    db: AsyncSession = Depends(get_db),
    store: CacheStore = Depends(get_cache_store),
    activities: ActivityService = Depends(get_activity_service),
    notifier: NotificationService = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> TaskService:
    cache = TaskCache(store, task_cache_config(settings))
    return TaskService(db, cache, activities, notifier)


def get_project_service(
    db: AsyncSession = Depends(get_db),
    store: CacheStore = Depends(get_cache_store),
    settings: Settings = Depends(get_settings),
) -> ProjectService:
    return ProjectService(db, ProjectCache(store, project_cache_config(settings)))


def get_actor_id(x_user_id: Annotated[int | None, Header()] = None) -> int | None:
    """Acting user for audit records; a real deployment derives this from auth."""
    return x_user_id


TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
ProjectServiceDep = Annotated[ProjectService, Depends(get_project_service)]
ActivityServiceDep = Annotated[ActivityService, Depends(get_activity_service)]
ActorDep = Annotated[int | None, Depends(get_actor_id)]
DbDep = Annotated[AsyncSession, Depends(get_db)]
