import itertools
import os

os.environ.setdefault("HT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HT_AUTO_PROCESSOR_ENABLED", "false")
os.environ.setdefault("HT_REDIS_URL", "")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hiretrack.core.application_status import APPLIED, TECHNICAL
from hiretrack.core.config import Settings
from hiretrack.db.init_db import create_all
from hiretrack.models import ActivityLog, Application, ApplicationComment, Job
from hiretrack.services.activity_log import SqlActivityRecorder
from hiretrack.services.application_repository import SqlApplicationRepository
from hiretrack.services.decision_policy import DecisionPolicy
from hiretrack.services.eligibility import build_rules
from hiretrack.services.progression_engine import ProgressionEngine

NOW = datetime(2026, 3, 2, 12, 0, 0)


class Seeder:
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def job(self, *, owner: int = 1, location: str | None = "Berlin", role_type: str = TECHNICAL) -> int:
        async with self.session_factory() as session:
            job = Job(
                title="Backend Engineer",
                location=location,
                role_type=role_type,
                created_by_person_id=owner,
                created_at=NOW - timedelta(days=7),
                updated_at=NOW - timedelta(days=7),
            )
            session.add(job)
            await session.commit()
            return job.job_id

    async def application(
        self,
        *,
        job_id: int,
        role_type: str = TECHNICAL,
        status: str = APPLIED,
        created_at: datetime,
        updated_at: datetime | None = None,
        last_processed: datetime | None = None,
        applicant: int = 100,
    ) -> int:
        async with self.session_factory() as session:
            application = Application(
                job_id=job_id,
                applicant_person_id=applicant,
                role_type=role_type,
                status=status,
                created_at=created_at,
                updated_at=updated_at or created_at,
                last_processed=last_processed,
            )
            session.add(application)
            await session.commit()
            return application.application_id

    async def get(self, application_id: int) -> Application:
        async with self.session_factory() as session:
            return await session.get(Application, application_id)

    async def activities(self, application_id: int | None = None) -> list[ActivityLog]:
        query = select(ActivityLog).order_by(ActivityLog.activity_id)
        if application_id is not None:
            query = query.where(ActivityLog.application_id == application_id)
        async with self.session_factory() as session:
            return list((await session.execute(query)).scalars().all())

    async def comments(self, application_id: int) -> list[ApplicationComment]:
        async with self.session_factory() as session:
            return list(
                (
                    await session.execute(
                        select(ApplicationComment)
                        .where(ApplicationComment.application_id == application_id)
                        .order_by(ApplicationComment.comment_id)
                    )
                ).scalars().all()
            )


@pytest.fixture()
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture()
def make_engine(session_factory):
    def factory(
        *,
        draws=None,
        repository=None,
        recorder=None,
        **overrides,
    ) -> ProgressionEngine:
        config = Settings(**overrides)
        source = itertools.cycle(draws) if draws is not None else None
        return ProgressionEngine(
            repository=repository or SqlApplicationRepository(session_factory),
            recorder=recorder or SqlActivityRecorder(session_factory, bus=None),
            policy=DecisionPolicy.from_settings(config, random_source=(lambda: next(source)) if source else None),
            rules=build_rules(config),
        )

    return factory
