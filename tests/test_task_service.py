import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.service import TaskCache, task_cache_config
from app.core.decorators import drain_background_tasks
from app.core.errors import TaskNotFoundError
from app.models import ActivityAction, TaskCreate, TaskFilter, TaskStatus, TaskUpdate
from app.services.activity_service import ActivityService
from app.services.task_service import TaskService
from tests.helpers import FailingCacheStore, RecordingNotifier


def count_calls(monkeypatch, target, name):
    calls = []
    original = getattr(target, name)

    async def spy(*args, **kwargs):
        calls.append(args)
        return await original(*args, **kwargs)

    monkeypatch.setattr(target, name, spy)
    return calls


async def create_task(service, seed, **fields):
    data = {"title": "Write release notes", "project_id": seed["project"], **fields}
    return await service.create(TaskCreate(**data), actor_id=seed["alice"])


async def test_second_read_is_served_from_cache(task_service, seed, monkeypatch):
    task = await create_task(task_service, seed)
    await task_service.cache.invalidate_item_cache(task.id)
    loads = count_calls(monkeypatch, task_service.repo, "find_one")

    first = await task_service.find_one(task.id)
    second = await task_service.find_one(task.id)

    assert first == second
    assert len(loads) == 1


async def test_create_caches_the_new_item(task_service, seed, monkeypatch):
    task = await create_task(task_service, seed)
    loads = count_calls(monkeypatch, task_service.repo, "find_one")

    assert await task_service.find_one(task.id) == task
    assert loads == []


async def test_list_is_cached_per_filter(task_service, seed, monkeypatch):
    await create_task(task_service, seed, status=TaskStatus.TODO)
    queries = count_calls(monkeypatch, task_service.repo, "find_many")

    todo = await task_service.find_all(TaskFilter(status=TaskStatus.TODO))
    again = await task_service.find_all(TaskFilter(status=TaskStatus.TODO))
    done = await task_service.find_all(TaskFilter(status=TaskStatus.COMPLETED))

    assert todo == again and len(todo) == 1
    assert done == []
    assert len(queries) == 2


async def test_create_invalidates_cached_lists(task_service, seed):
    filters = TaskFilter(assignee_id=seed["bob"])
    assert await task_service.find_all(filters) == []

    task = await create_task(task_service, seed, assignee_id=seed["bob"])

    assert [t.id for t in await task_service.find_all(filters)] == [task.id]


async def test_not_found_propagates_and_is_not_cached(task_service, cache_store):
    with pytest.raises(TaskNotFoundError):
        await task_service.find_one(999)

    assert await cache_store.get(task_service.cache.item_key(999)) is None


async def test_reads_fall_back_to_database_when_cache_is_down(
    db, activities, notifier, settings, seed
):
    store = FailingCacheStore()
    service = TaskService(db, TaskCache(store, task_cache_config(settings)), activities, notifier)

    task = await create_task(service, seed, assignee_id=seed["alice"])

    assert (await service.find_one(task.id)).title == "Write release notes"
    assert [t.id for t in await service.find_all(TaskFilter())] == [task.id]
    assert store.calls > 0
    with pytest.raises(TaskNotFoundError):
        await service.find_one(task.id + 1)


async def test_update_records_diff_and_refreshes_cache(task_service, activities, seed):
    task = await create_task(task_service, seed, tag_ids=seed["tags"])
    await task_service.find_one(task.id)

    updated = await task_service.update(
        task.id, TaskUpdate(title="Write final release notes"), actor_id=seed["bob"]
    )

    assert updated.title == "Write final release notes"
    assert (await task_service.find_one(task.id)).title == "Write final release notes"
    page = await activities.find_by_task(task.id)
    updates = [r for r in page.data if r.action == ActivityAction.UPDATED]
    assert len(updates) == 1
    assert set(updates[0].changes) == {"title"}
    assert updates[0].changes["title"].old == "Write release notes"
    assert updates[0].user_id == seed["bob"]


async def test_update_with_same_values_logs_nothing(task_service, activities, seed):
    task = await create_task(task_service, seed, tag_ids=seed["tags"])

    await task_service.update(
        task.id,
        TaskUpdate(title=task.title, tag_ids=list(reversed(seed["tags"]))),
        actor_id=seed["alice"],
    )

    actions = [r.action for r in (await activities.find_by_task(task.id)).data]
    assert actions == [ActivityAction.CREATED]


async def test_update_tracks_tag_membership(task_service, activities, seed):
    urgent, backend = seed["tags"]
    task = await create_task(task_service, seed, tag_ids=[urgent])

    updated = await task_service.update(task.id, TaskUpdate(tag_ids=[urgent, backend]))

    assert sorted(tag.id for tag in updated.tags) == sorted([urgent, backend])
    record = (await activities.find_by_task(task.id)).data[0]
    assert record.changes["tags"].old == [urgent]
    assert record.changes["tags"].new == sorted([urgent, backend])


async def test_update_missing_task_raises(task_service):
    with pytest.raises(TaskNotFoundError):
        await task_service.update(404, TaskUpdate(title="x"))


async def test_delete_logs_before_removal_and_invalidates(task_service, activities, seed):
    task = await create_task(task_service, seed)

    result = await task_service.delete(task.id, actor_id=seed["alice"])

    assert result == {"message": "Task deleted successfully"}
    with pytest.raises(TaskNotFoundError):
        await task_service.find_one(task.id)
    page = await activities.find_by_task(task.id)
    assert [r.action for r in page.data] == [ActivityAction.DELETED, ActivityAction.CREATED]
    assert all(r.task_id is None for r in page.data)


async def test_activity_failures_do_not_fail_mutations(db, cache_store, settings, seed, tmp_path):
    broken_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
    broken = ActivityService(async_sessionmaker(broken_engine, class_=AsyncSession))
    service = TaskService(
        db, TaskCache(cache_store, task_cache_config(settings)), broken, RecordingNotifier()
    )

    task = await create_task(service, seed)
    updated = await service.update(task.id, TaskUpdate(title="Renamed"))
    deleted = await service.delete(task.id)

    assert updated.title == "Renamed"
    assert deleted == {"message": "Task deleted successfully"}
    await broken_engine.dispose()


async def test_assignment_notification_is_sent_in_background(task_service, notifier, seed):
    task = await create_task(task_service, seed, assignee_id=seed["alice"])
    await drain_background_tasks()

    assert notifier.sent == [("alice@example.com", task.title)]


async def test_notification_failure_does_not_fail_create(db, cache_store, activities, settings, seed):
    service = TaskService(
        db,
        TaskCache(cache_store, task_cache_config(settings)),
        activities,
        RecordingNotifier(fail=True),
    )

    task = await create_task(service, seed, assignee_id=seed["alice"])
    await drain_background_tasks()

    assert task.assignee.email == "alice@example.com"


async def test_create_does_not_wait_for_slow_notifications(db, cache_store, activities, settings, seed):
    release = asyncio.Event()

    class SlowNotifier(RecordingNotifier):
        async def notify_assignment(self, recipient, task_title):
            await release.wait()
            await super().notify_assignment(recipient, task_title)

    notifier = SlowNotifier()
    service = TaskService(
        db, TaskCache(cache_store, task_cache_config(settings)), activities, notifier
    )

    await asyncio.wait_for(create_task(service, seed, assignee_id=seed["alice"]), timeout=5)
    assert notifier.sent == []

    release.set()
    await drain_background_tasks()
    assert len(notifier.sent) == 1


async def test_reassignment_notifies_only_on_change(task_service, notifier, seed):
    task = await create_task(task_service, seed, assignee_id=seed["alice"])
    await task_service.update(task.id, TaskUpdate(assignee_id=seed["alice"]))
    await task_service.update(task.id, TaskUpdate(assignee_id=seed["bob"]))
    await task_service.update(task.id, TaskUpdate(assignee_id=None))
    await drain_background_tasks()

    assert [recipient for recipient, _ in notifier.sent] == [
        "alice@example.com",
        "bob@example.com",
    ]
