from sqlalchemy.ext.asyncio import AsyncEngine

import hiretrack.models  # noqa: F401  registers every table on Base.metadata
from hiretrack.db.base import Base


async def create_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
