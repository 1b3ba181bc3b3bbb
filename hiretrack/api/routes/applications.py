from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import StreamingResponse

from hiretrack.api import deps
from hiretrack.core.application_status import ALL_PERFORMERS
from hiretrack.core.auth import require_roles
from hiretrack.core.roles import Role
from hiretrack.jobs.scheduler import AutoProcessorScheduler
from hiretrack.schemas.activity import ActivityLogOut
from hiretrack.schemas.auto_processor import TriggerAIProcessIn, TriggerAIProcessOut
from hiretrack.schemas.user import UserContext
from hiretrack.services.activity_log import list_activities
from hiretrack.services.event_bus import event_bus

logger = logging.getLogger("hiretrack.api")

router = APIRouter(prefix="/api/applications", tags=["applications"])


@router.post("/trigger-ai-process", response_model=TriggerAIProcessOut)
async def trigger_ai_process(
    payload: TriggerAIProcessIn,
    processor: AutoProcessorScheduler = Depends(deps.get_auto_processor),
    user: UserContext = Depends(require_roles([Role.ADMIN])),
):
    if not payload.application_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Application IDs are required")
    try:
        result = await processor.trigger_manual(user.person_id, payload.application_ids)
    except SQLAlchemyError:
        logger.exception("manual_trigger_failed", extra={"actor_person_id": user.person_id})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Server error")
    return TriggerAIProcessOut(processed=result.processed, total=result.total)


@router.get("/bot-activities", response_model=list[ActivityLogOut])
async def get_bot_activities(
    performed_by: str | None = Query(default=None),
    application_id: list[int] | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(deps.get_db_session),
    user: UserContext = Depends(require_roles([Role.ADMIN])),
):
    if performed_by is not None and performed_by not in ALL_PERFORMERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown performer '{performed_by}'.")
    rows = await list_activities(
        session,
        performed_by=performed_by,
        application_ids=application_id,
        owner_person_id=user.person_id,
        limit=limit,
        offset=offset,
    )
    return [ActivityLogOut.model_validate(row) for row in rows]


@router.get("/activity-stream")
async def stream_activity(
    request: Request,
    _user: UserContext = Depends(require_roles([Role.ADMIN])),
):
    queue = await event_bus.subscribe()

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=15)
                    yield f"data: {data}\n\n"
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
        finally:
            await event_bus.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
