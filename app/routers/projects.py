from fastapi import APIRouter, Query, status
from typing_extensions import Annotated

from app.dependencies import ProjectServiceDep
from app.models import ProjectCreate, ProjectFilter, ProjectRead

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(project_data: ProjectCreate, service: ProjectServiceDep):
    return await service.create(project_data)


@router.get("/", response_model=list[ProjectRead])
async def get_projects(filters: Annotated[ProjectFilter, Query()], service: ProjectServiceDep):
    return await service.find_all(filters)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(project_id: int, service: ProjectServiceDep):
    return await service.find_one(project_id)
