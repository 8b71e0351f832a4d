from fastapi import APIRouter, Query
from typing_extensions import Annotated

from app.dependencies import ActivityServiceDep
from app.models import ActivityFilter, ActivityPage

router = APIRouter(tags=["activities"])


@router.get("/activities", response_model=ActivityPage)
async def get_activities(
    filters: Annotated[ActivityFilter, Query()], service: ActivityServiceDep
):
    """Activity history, newest first"""
    return await service.query(filters)


@router.get("/tasks/{task_id}/activities", response_model=ActivityPage)
async def get_task_activities(
    task_id: int, filters: Annotated[ActivityFilter, Query()], service: ActivityServiceDep
):
    """Activity history of one task, including after it was deleted"""
    return await service.find_by_task(task_id, filters)
