import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.service import ProjectCache
from app.core.errors import ProjectNotFoundError
from app.models import Project, ProjectCreate, ProjectFilter, ProjectRead

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db: AsyncSession, cache: ProjectCache):
        self.db = db
        self.cache = cache

    async def _query_list(self, filters: ProjectFilter) -> list[ProjectRead]:
        query = select(Project)
        if filters.name:
            query = query.where(Project.name.icontains(filters.name))
        result = await self.db.exec(query.order_by(Project.created_at.desc()))
        return [ProjectRead.model_validate(project) for project in result.all()]

    async def _query_one(self, project_id: int) -> ProjectRead:
        project = await self.db.get(Project, project_id)
        if not project:
            raise ProjectNotFoundError(project_id)
        return ProjectRead.model_validate(project)

    async def find_all(self, filters: ProjectFilter) -> list[ProjectRead]:
        key = self.cache.list_key(filters)
        try:
            return await self.cache.wrap_query(
                key, lambda: self._query_list(filters), self.cache.config.list_ttl
            )
        except Exception:
            logger.exception(f"Cache unavailable for {key}, querying database")
            return await self._query_list(filters)

    async def find_one(self, project_id: int) -> ProjectRead:
        key = self.cache.item_key(project_id)
        try:
            return await self.cache.wrap_query(
                key, lambda: self._query_one(project_id), self.cache.config.item_ttl
            )
        except ProjectNotFoundError:
            raise
        except Exception:
            logger.exception(f"Cache unavailable for {key}, querying database")
            return await self._query_one(project_id)

    async def create(self, data: ProjectCreate) -> ProjectRead:
        project = Project.model_validate(data)
        self.db.add(project)
        await self.db.commit()
        await self.db.refresh(project)

        result = ProjectRead.model_validate(project)
        await self.cache.cache_item(result.id, result)
        await self.cache.invalidate_list_caches()
        return result
