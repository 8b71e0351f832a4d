import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar

from pydantic import BaseModel

from app.cache.keys import derive_item_key, derive_list_key, list_pattern
from app.cache.store import CacheStore
from app.core.config import Settings
from app.core.decorators import best_effort
from app.models import ProjectRead, TaskRead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKeyConfig:
    """Per entity family: key prefix and TTLs in milliseconds."""

    prefix: str
    list_ttl: int
    item_ttl: int


class ReadThroughCache:
    """
    Read-through cache for one entity family.

    Entities are stored as JSON and rebuilt with `schema` on the way out,
    so a value served from the cache equals the value first computed.
    Read and write helpers never raise; wrap_query does, and callers are
    expected to fall back to the underlying query.
    """

    schema: ClassVar[type[BaseModel]]

    def __init__(self, store: CacheStore, config: CacheKeyConfig):
        self.store = store
        self.config = config

    def list_key(self, filters: Any) -> str:
        return derive_list_key(self.config.prefix, filters)

    def item_key(self, entity_id: Any) -> str:
        return derive_item_key(self.config.prefix, entity_id)

    def _dump(self, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        if isinstance(value, (list, tuple)):
            return [self._dump(item) for item in value]
        return value

    def _load(self, raw: Any) -> Any:
        if raw is None:
            return None
        if isinstance(raw, list):
            return [self.schema.model_validate(item) for item in raw]
        return self.schema.model_validate(raw)

    @best_effort("item cache write")
    async def cache_item(self, entity_id: Any, entity: Any) -> None:
        await self.store.set(self.item_key(entity_id), self._dump(entity), self.config.item_ttl)

    @best_effort("item cache read")
    async def get_cached_item(self, entity_id: Any) -> Any | None:
        return self._load(await self.store.get(self.item_key(entity_id)))

    @best_effort("list cache write")
    async def cache_list(self, filters: Any, entities: list) -> None:
        await self.store.set(self.list_key(filters), self._dump(entities), self.config.list_ttl)

    @best_effort("list cache read")
    async def get_cached_list(self, filters: Any) -> list | None:
        return self._load(await self.store.get(self.list_key(filters)))

    async def wrap_query(
        self, key: str, query_fn: Callable[[], Awaitable[Any]], ttl: int
    ) -> Any:
        async def compute():
            return self._dump(await query_fn())

        return self._load(await self.store.get_or_compute(key, compute, ttl))

    @best_effort("item cache invalidation")
    async def invalidate_item_cache(self, entity_id: Any) -> None:
        await self.store.delete(self.item_key(entity_id))

    @best_effort("list cache invalidation")
    async def invalidate_list_caches(self) -> None:
        # No-op on backends that cannot scan; entries then age out by TTL.
        keys = await self.store.scan_keys(list_pattern(self.config.prefix))
        for key in keys:
            await self.store.delete(key)
        logger.debug(f"Invalidated {len(keys)} {self.config.prefix} list cache(s)")

    async def invalidate_all_caches(self, entity_id: Any) -> None:
        await asyncio.gather(
            self.invalidate_item_cache(entity_id),
            self.invalidate_list_caches(),
        )


class TaskCache(ReadThroughCache):
    schema = TaskRead


class ProjectCache(ReadThroughCache):
    schema = ProjectRead


def task_cache_config(settings: Settings) -> CacheKeyConfig:
    return CacheKeyConfig(
        prefix="tasks",
        list_ttl=settings.cache_ttl_task_list,
        item_ttl=settings.cache_ttl_task_item,
    )


def project_cache_config(settings: Settings) -> CacheKeyConfig:
    return CacheKeyConfig(
        prefix="projects",
        list_ttl=settings.cache_ttl_project_list,
        item_ttl=settings.cache_ttl_project_item,
    )
