from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hiretrack.db.session import get_session
from hiretrack.jobs.scheduler import AutoProcessorScheduler


async def get_db_session() -> AsyncSession:
    async for session in get_session():
        yield session


def get_auto_processor(request: Request) -> AutoProcessorScheduler:
    processor = getattr(request.app.state, "auto_processor", None)
    if processor is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auto processor unavailable")
    return processor
