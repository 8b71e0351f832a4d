from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import get_settings

# Create async engine
engine = create_async_engine(
    get_settings().database_url,
    echo=False,  # Set to False in production
    future=True,
    pool_pre_ping=True,
)

# Create async session factory using async_sessionmaker
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


# Dependency for getting DB session
async def get_db():
    async with async_session() as session:
        yield session


# Activity logging opens its own sessions from this factory
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


# Helper function to create tables (optional, useful for testing)
async def create_db_and_tables(bind=engine):
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
