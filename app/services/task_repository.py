from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.models import Tag, Task, TaskActivity, TaskCreate, TaskFilter, TaskUpdate


class TaskRepository:
    """Persistence query layer for tasks; relations are always eager-loaded."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _with_relations(query):
        return query.options(
            selectinload(Task.assignee),
            selectinload(Task.project),
            selectinload(Task.tags),
        )

    async def _load_tags(self, tag_ids: list[int]) -> list[Tag]:
        if not tag_ids:
            return []
        result = await self.db.exec(select(Tag).where(Tag.id.in_(tag_ids)))
        return list(result.all())

    async def find_many(self, filters: TaskFilter) -> list[Task]:
        query = select(Task)
        if filters.status:
            query = query.where(Task.status == filters.status)
        if filters.priority:
            query = query.where(Task.priority == filters.priority)
        if filters.assignee_id is not None:
            query = query.where(Task.assignee_id == filters.assignee_id)
        if filters.project_id is not None:
            query = query.where(Task.project_id == filters.project_id)
        if filters.due_date_from:
            query = query.where(Task.due_date >= filters.due_date_from)
        if filters.due_date_to:
            query = query.where(Task.due_date <= filters.due_date_to)
        query = self._with_relations(query).order_by(Task.created_at.desc(), Task.id.desc())

        result = await self.db.exec(query)
        return list(result.all())

    async def find_one(self, task_id: int) -> Task | None:
        query = self._with_relations(select(Task).where(Task.id == task_id))
        result = await self.db.exec(query.execution_options(populate_existing=True))
        return result.first()

    async def create(self, data: TaskCreate) -> Task:
        task = Task.model_validate(data.model_dump(exclude={"tag_ids"}))
        task.tags = await self._load_tags(data.tag_ids or [])
        self.db.add(task)
        await self.db.commit()
        return await self.find_one(task.id)

    async def update(self, task_id: int, data: TaskUpdate) -> Task | None:
        task = await self.find_one(task_id)
        if not task:
            return None
        update_data = data.model_dump(exclude_unset=True, exclude={"tag_ids"})
        task.sqlmodel_update(update_data)
        if data.tag_ids is not None:
            task.tags = await self._load_tags(data.tag_ids)
        task.updated_at = datetime.now(timezone.utc)
        await self.db.commit()
        return await self.find_one(task_id)

    async def delete(self, task_id: int) -> bool:
        task = await self.find_one(task_id)
        if not task:
            return False
        # Detach the audit trail instead of cascading; the rows must survive.
        await self.db.exec(
            update(TaskActivity).where(TaskActivity.task_id == task_id).values(task_id=None)
        )
        await self.db.delete(task)
        await self.db.commit()
        return True
