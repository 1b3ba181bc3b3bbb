from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hiretrack.core.config import settings


engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def get_session() -> AsyncSession:
    async with SessionLocal() as session:
        yield session
