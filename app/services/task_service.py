import asyncio
import logging
from typing import Awaitable, Callable

from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.service import TaskCache
from app.core.decorators import run_best_effort, spawn_background
from app.core.errors import TaskNotFoundError
from app.models import TaskCreate, TaskFilter, TaskRead, TaskUpdate
from app.services.activity_service import ActivityService
from app.services.change_detector import detect_changes
from app.services.notifications import NotificationService
from app.services.task_repository import TaskRepository

logger = logging.getLogger(__name__)


class TaskService:
    """
    Coordinates persistence, cache, activity log and notifications per request.

    Cache failures fall back to the database; activity and notification
    failures are logged and dropped. Only NotFound and persistence errors
    reach the caller.
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: TaskCache,
        activities: ActivityService,
        notifier: NotificationService,
    ):
        self.repo = TaskRepository(db)
        self.cache = cache
        self.activities = activities
        self.notifier = notifier

    async def _query_list(self, filters: TaskFilter) -> list[TaskRead]:
        tasks = await self.repo.find_many(filters)
        return [TaskRead.model_validate(task) for task in tasks]

    async def _query_one(self, task_id: int) -> TaskRead:
        task = await self.repo.find_one(task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return TaskRead.model_validate(task)

    async def find_all(self, filters: TaskFilter) -> list[TaskRead]:
        key = self.cache.list_key(filters)
        try:
            return await self.cache.wrap_query(
                key, lambda: self._query_list(filters), self.cache.config.list_ttl
            )
        except Exception:
            logger.exception(f"Cache unavailable for {key}, querying database")
            return await self._query_list(filters)

    async def find_one(self, task_id: int) -> TaskRead:
        key = self.cache.item_key(task_id)
        try:
            return await self.cache.wrap_query(
                key, lambda: self._query_one(task_id), self.cache.config.item_ttl
            )
        except TaskNotFoundError:
            raise
        except Exception:
            logger.exception(f"Cache unavailable for {key}, querying database")
            return await self._query_one(task_id)

    async def _audit(self, operation: Callable[[], Awaitable[None]], context: str) -> None:
        # Shielded so an aborted request still leaves its audit record behind.
        await asyncio.shield(run_best_effort(operation, context))

    def _notify_assignee(self, task: TaskRead) -> None:
        if not task.assignee:
            return
        spawn_background(
            lambda: self.notifier.notify_assignment(task.assignee.email, task.title),
            f"Assignment notification for task {task.id}",
        )

    async def create(self, data: TaskCreate, actor_id: int | None = None) -> TaskRead:
        task = TaskRead.model_validate(await self.repo.create(data))

        await self.cache.cache_item(task.id, task)
        # A new task may match any cached filter
        await self.cache.invalidate_list_caches()

        await self._audit(
            lambda: self.activities.log_created(task.id, actor_id),
            f"Activity logging (create) for task {task.id}",
        )
        self._notify_assignee(task)
        return task

    async def update(
        self, task_id: int, data: TaskUpdate, actor_id: int | None = None
    ) -> TaskRead:
        existing = await self.find_one(task_id)

        updated = await self.repo.update(task_id, data)
        if not updated:
            raise TaskNotFoundError(task_id)
        task = TaskRead.model_validate(updated)

        await self.cache.invalidate_all_caches(task_id)

        async def record_changes():
            changes = detect_changes(existing, task)
            await self.activities.log_updated(task_id, actor_id, changes)

        await self._audit(record_changes, f"Activity logging (update) for task {task_id}")

        if task.assignee_id is not None and task.assignee_id != existing.assignee_id:
            self._notify_assignee(task)
        return task

    async def delete(self, task_id: int, actor_id: int | None = None) -> dict:
        await self.find_one(task_id)

        # Logged first so the record still references a live task when written.
        await self._audit(
            lambda: self.activities.log_deleted(task_id, actor_id),
            f"Activity logging (delete) for task {task_id}",
        )

        if not await self.repo.delete(task_id):
            raise TaskNotFoundError(task_id)
        await self.cache.invalidate_all_caches(task_id)
        return {"message": "Task deleted successfully"}
