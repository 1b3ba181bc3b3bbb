from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from hiretrack.models.application import Application, ApplicationComment
from hiretrack.services.decision_policy import InterviewDetails


@dataclass(frozen=True)
class StatusTransition:
    application_id: int
    expected_status: str
    new_status: str
    processed_at: datetime
    comment: str | None = None
    comment_author_person_id: int | None = None
    interview: InterviewDetails | None = None


class ApplicationRepository(Protocol):
    async def find_by_rule(
        self,
        *,
        source_statuses: Iterable[str],
        role_type: str | None = None,
        created_before: datetime | None = None,
        updated_before: datetime | None = None,
        exclude_if_processed: bool = False,
    ) -> Sequence[Application]: ...

    async def find_by_ids(self, application_ids: Iterable[int]) -> Sequence[Application]: ...

    async def apply_transition(self, transition: StatusTransition) -> bool: ...


class SqlApplicationRepository:
    """Application reads and guarded status writes, one short session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_rule(
        self,
        *,
        source_statuses: Iterable[str],
        role_type: str | None = None,
        created_before: datetime | None = None,
        updated_before: datetime | None = None,
        exclude_if_processed: bool = False,
    ) -> Sequence[Application]:
        conditions = [Application.status.in_(sorted(source_statuses))]
        if role_type is not None:
            conditions.append(Application.role_type == role_type)
        # Cutoffs are inclusive: a record exactly one window old is due.
        if created_before is not None:
            conditions.append(Application.created_at <= created_before)
        if updated_before is not None:
            conditions.append(Application.updated_at <= updated_before)
        if exclude_if_processed:
            conditions.append(Application.last_processed.is_(None))

        async with self._session_factory() as session:
            return (
                await session.execute(
                    select(Application)
                    .options(selectinload(Application.job))
                    .where(*conditions)
                    .order_by(Application.created_at.asc(), Application.application_id.asc())
                )
            ).scalars().all()

    async def find_by_ids(self, application_ids: Iterable[int]) -> Sequence[Application]:
        ids = sorted({int(item) for item in application_ids})
        if not ids:
            return []
        async with self._session_factory() as session:
            return (
                await session.execute(
                    select(Application)
                    .options(selectinload(Application.job))
                    .where(Application.application_id.in_(ids))
                    .order_by(Application.application_id.asc())
                )
            ).scalars().all()

    async def apply_transition(self, transition: StatusTransition) -> bool:
        """Write the transition only if the stored status still equals `expected_status`.

        Returns False when another writer moved the record first; nothing is changed then.
        """
        values = {
            "status": transition.new_status,
            "last_processed": transition.processed_at,
            "updated_at": transition.processed_at,
        }
        interview = transition.interview
        if interview is not None:
            values.update(
                interview_scheduled_at=interview.scheduled_at,
                interview_location=interview.location,
                interview_notes=interview.notes,
                interview_created_by_person_id=interview.created_by_person_id,
                interview_created_at=interview.created_at,
            )

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Application)
                    .where(
                        Application.application_id == transition.application_id,
                        Application.status == transition.expected_status,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                if transition.comment:
                    session.add(
                        ApplicationComment(
                            application_id=transition.application_id,
                            text=transition.comment,
                            author_person_id=transition.comment_author_person_id,
                            created_at=transition.processed_at,
                        )
                    )
        return True

