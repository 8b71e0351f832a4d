from fastapi import APIRouter, Query, status
from typing_extensions import Annotated

from app.dependencies import ActorDep, TaskServiceDep
from app.models import TaskCreate, TaskFilter, TaskRead, TaskUpdate

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, service: TaskServiceDep, actor_id: ActorDep):
    """Create a new task"""
    return await service.create(task_data, actor_id)


@router.get("/", response_model=list[TaskRead])
async def get_tasks(filters: Annotated[TaskFilter, Query()], service: TaskServiceDep):
    return await service.find_all(filters)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(task_id: int, service: TaskServiceDep):
    """Get a specific task by ID"""
    return await service.find_one(task_id)


@router.api_route("/{task_id}", methods=["PUT", "PATCH"], response_model=TaskRead)
async def update_task(
    task_id: int, task_data: TaskUpdate, service: TaskServiceDep, actor_id: ActorDep
):
    return await service.update(task_id, task_data, actor_id)


@router.delete("/{task_id}")
async def delete_task(task_id: int, service: TaskServiceDep, actor_id: ActorDep):
    """Delete a task"""
    return await service.delete(task_id, actor_id)
