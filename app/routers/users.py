from fastapi import APIRouter, Query, status

from app.dependencies import DbDep
from app.models import TagCreate, TagRead, UserCreate, UserRead
from app.services.user_service import TagService, UserService

router = APIRouter(prefix="/users", tags=["users"])
tags_router = APIRouter(prefix="/tags", tags=["tags"])


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(user_data: UserCreate, db: DbDep):
    return await UserService.create_user(user_data, db)


@router.get("/", response_model=list[UserRead])
async def get_users(
    db: DbDep,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
):
    return await UserService.get_all_users(db, skip, limit)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: int, db: DbDep):
    return await UserService.get_user(user_id, db)


@tags_router.post("/", response_model=TagRead, status_code=status.HTTP_201_CREATED)
async def create_tag(tag_data: TagCreate, db: DbDep):
    return await TagService.create_tag(tag_data, db)


@tags_router.get("/", response_model=list[TagRead])
async def get_tags(db: DbDep):
    return await TagService.get_all_tags(db)
