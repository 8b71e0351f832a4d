from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.errors import UserNotFoundError
from app.models import Tag, TagCreate, User, UserCreate


class UserService:
    @staticmethod
    async def create_user(user_data: UserCreate, db: AsyncSession):
        user = User.model_validate(user_data)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_all_users(db: AsyncSession, skip: int, limit: int):
        query = select(User).offset(skip).limit(limit).order_by(User.id)
        result = await db.exec(query)
        return result.all()

    @staticmethod
    async def get_user(user_id: int, db: AsyncSession):
        user = await db.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user


class TagService:
    @staticmethod
    async def create_tag(tag_data: TagCreate, db: AsyncSession):
        tag = Tag.model_validate(tag_data)
        db.add(tag)
        await db.commit()
        await db.refresh(tag)
        return tag

    @staticmethod
    async def get_all_tags(db: AsyncSession):
        result = await db.exec(select(Tag).order_by(Tag.name))
        return result.all()
