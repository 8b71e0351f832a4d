import logging

from sqlalchemy import func
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.models import (
    DELETED_TASK_TITLE,
    ActivityAction,
    ActivityFilter,
    ActivityPage,
    ActivityRead,
    ChangeMap,
    PageMeta,
    Task,
    TaskActivity,
    User,
)

logger = logging.getLogger(__name__)


class ActivityService:
    """
    Append-only task activity log.

    Each call opens its own session, so audit writes commit independently
    of the request's transaction. Records are never updated or deleted.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_activity(
        self,
        task_id: int,
        user_id: int | None,
        action: ActivityAction,
        changes: ChangeMap | None = None,
    ) -> None:
        activity = TaskActivity(
            task_id=task_id,
            task_ref=task_id,
            user_id=user_id,
            action=action,
            changes=(
                {field: change.model_dump(mode="json") for field, change in changes.items()}
                if changes
                else None
            ),
        )
        async with self.session_factory() as session:
            session.add(activity)
            await session.commit()
        logger.debug(f"Recorded {action.value} activity for task {task_id}")

    async def log_created(self, task_id: int, user_id: int | None) -> None:
        await self.create_activity(task_id, user_id, ActivityAction.CREATED)

    async def log_updated(self, task_id: int, user_id: int | None, changes: ChangeMap) -> None:
        if not changes:
            return
        await self.create_activity(task_id, user_id, ActivityAction.UPDATED, changes)

    async def log_deleted(self, task_id: int, user_id: int | None) -> None:
        await self.create_activity(task_id, user_id, ActivityAction.DELETED)

    @staticmethod
    def _conditions(filters: ActivityFilter) -> list:
        conditions = []
        if filters.user_id is not None:
            conditions.append(TaskActivity.user_id == filters.user_id)
        if filters.task_id is not None:
            # task_ref survives deletion of the task; task_id does not
            conditions.append(TaskActivity.task_ref == filters.task_id)
        if filters.action:
            conditions.append(TaskActivity.action == filters.action)
        if filters.date_from:
            conditions.append(TaskActivity.created_at >= filters.date_from)
        if filters.date_to:
            conditions.append(TaskActivity.created_at <= filters.date_to)
        return conditions

    async def query(self, filters: ActivityFilter) -> ActivityPage:
        conditions = self._conditions(filters)
        rows_query = (
            select(TaskActivity, Task.title, User.name)
            .outerjoin(Task, TaskActivity.task_id == Task.id)
            .outerjoin(User, TaskActivity.user_id == User.id)
            .where(*conditions)
            .order_by(TaskActivity.created_at.desc(), TaskActivity.id.desc())
            .offset(filters.skip)
            .limit(filters.per_page)
        )
        count_query = select(func.count()).select_from(TaskActivity).where(*conditions)

        async with self.session_factory() as session:
            rows = (await session.exec(rows_query)).all()
            total = (await session.exec(count_query)).one()

        data = [
            ActivityRead(
                id=activity.id,
                task_id=activity.task_id,
                task_title=title or DELETED_TASK_TITLE,
                user_id=activity.user_id,
                user_name=user_name,
                action=activity.action,
                changes=activity.changes,
                created_at=activity.created_at,
            )
            for activity, title, user_name in rows
        ]
        return ActivityPage(
            data=data,
            meta=PageMeta.build(total=total, page=filters.page, per_page=filters.per_page),
        )

    async def find_by_task(self, task_id: int, filters: ActivityFilter | None = None) -> ActivityPage:
        filters = filters or ActivityFilter()
        return await self.query(filters.model_copy(update={"task_id": task_id}))

    async def find_by_user(self, user_id: int, filters: ActivityFilter | None = None) -> ActivityPage:
        filters = filters or ActivityFilter()
        return await self.query(filters.model_copy(update={"user_id": user_id}))
