from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hiretrack.models.activity_log import ActivityLog
from hiretrack.models.application import Application
from hiretrack.models.job import Job
from hiretrack.services.event_bus import EventBus, event_bus


@dataclass(frozen=True)
class ActivityLogEntry:
    application_id: int
    action: str
    previous_status: str | None
    new_status: str | None
    comment: str | None
    performed_by: str
    timestamp: datetime
    actor_person_id: int | None = None


class ActivityRecorder(Protocol):
    async def record(self, entry: ActivityLogEntry) -> None: ...


async def log_activity(session: AsyncSession, entry: ActivityLogEntry) -> ActivityLog:
    row = ActivityLog(
        application_id=entry.application_id,
        actor_person_id=entry.actor_person_id,
        action=entry.action,
        previous_status=entry.previous_status,
        new_status=entry.new_status,
        comment=entry.comment,
        performed_by=entry.performed_by,
        timestamp=entry.timestamp,
    )
    session.add(row)
    await session.flush()
    return row


class SqlActivityRecorder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, bus: EventBus | None = event_bus) -> None:
        self._session_factory = session_factory
        self._bus = bus

    async def record(self, entry: ActivityLogEntry) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await log_activity(session, entry)
        # Publish only once the row is committed.
        if self._bus is not None:
            await self._bus.publish(
                {
                    "activity_id": row.activity_id,
                    "application_id": entry.application_id,
                    "action": entry.action,
                    "previous_status": entry.previous_status,
                    "new_status": entry.new_status,
                    "performed_by": entry.performed_by,
                    "timestamp": entry.timestamp.isoformat(),
                }
            )


async def list_activities(
    session: AsyncSession,
    *,
    performed_by: str | None = None,
    application_ids: Iterable[int] | None = None,
    owner_person_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> Sequence[ActivityLog]:
    """Newest first. `owner_person_id` restricts to applications on jobs that person created."""
    query = select(ActivityLog)
    if performed_by:
        query = query.where(ActivityLog.performed_by == performed_by)
    if application_ids is not None:
        query = query.where(ActivityLog.application_id.in_(list(application_ids)))
    if owner_person_id is not None:
        owned_applications = (
            select(Application.application_id)
            .join(Job, Job.job_id == Application.job_id)
            .where(Job.created_by_person_id == owner_person_id)
        )
        query = query.where(ActivityLog.application_id.in_(owned_applications))
    query = query.order_by(ActivityLog.timestamp.desc(), ActivityLog.activity_id.desc()).limit(limit).offset(offset)
    return (await session.execute(query)).scalars().all()
