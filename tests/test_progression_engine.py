from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from hiretrack.core.application_status import (
    APPLIED,
    INTERVIEW,
    NON_TECHNICAL,
    OFFER,
    PERFORMED_BY_AI_SYSTEM,
    REJECTED,
    REVIEWED,
)
from hiretrack.models import Application
from hiretrack.services.activity_log import ActivityLogEntry, SqlActivityRecorder
from hiretrack.services.application_repository import SqlApplicationRepository, StatusTransition
from hiretrack.services.decision_policy import (
    ACTION_AUTO_OFFER,
    ACTION_AUTO_REVIEW,
    ACTION_AUTO_SCHEDULE,
    ACTION_AUTO_TIMEOUT,
    INTERVIEW_NOTES,
)
from hiretrack.services.eligibility import (
    RULE_AUTO_REVIEW,
    RULE_AUTO_SCHEDULE,
    RULE_INTERVIEW_OUTCOME,
    RULE_STALE_TIMEOUT,
)

NOW = datetime(2026, 3, 2, 12, 0, 0)


class FlakyRepository(SqlApplicationRepository):
    def __init__(self, session_factory, *, fail_for: set[int]) -> None:
        super().__init__(session_factory)
        self.fail_for = fail_for

    async def apply_transition(self, transition: StatusTransition) -> bool:
        if transition.application_id in self.fail_for:
            raise OperationalError("UPDATE application", {}, Exception("database is locked"))
        return await super().apply_transition(transition)


class BrokenQueryRepository(SqlApplicationRepository):
    async def find_by_rule(self, **kwargs):
        if kwargs.get("exclude_if_processed"):
            raise OperationalError("SELECT application", {}, Exception("connection reset"))
        return await super().find_by_rule(**kwargs)


class FlakyRecorder(SqlActivityRecorder):
    def __init__(self, session_factory, *, fail_for: set[int]) -> None:
        super().__init__(session_factory, bus=None)
        self.fail_for = fail_for
        self.attempts: list[ActivityLogEntry] = []

    async def record(self, entry: ActivityLogEntry) -> None:
        self.attempts.append(entry)
        if entry.application_id in self.fail_for:
            raise OperationalError("INSERT activity_log", {}, Exception("disk full"))
        await super().record(entry)


async def test_new_technical_application_is_reviewed_after_window(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=31))

    result = await make_engine().run_sweep(NOW)

    assert result.processed_count == 1
    assert result.per_rule[RULE_AUTO_REVIEW] == 1
    application = await seed.get(app_id)
    assert application.status == REVIEWED
    assert application.last_processed == NOW
    assert application.updated_at == NOW

    comments = await seed.comments(app_id)
    assert len(comments) == 1
    assert "automatically reviewed" in comments[0].text
    assert comments[0].author_person_id is None

    activities = await seed.activities(app_id)
    assert len(activities) == 1
    entry = activities[0]
    assert (entry.previous_status, entry.new_status) == (APPLIED, REVIEWED)
    assert entry.performed_by == PERFORMED_BY_AI_SYSTEM
    assert entry.action == ACTION_AUTO_REVIEW
    assert entry.actor_person_id is None
    assert entry.timestamp == NOW


async def test_application_inside_window_is_left_alone(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=29))

    result = await make_engine().run_sweep(NOW)

    assert result.processed_count == 0
    assert (await seed.get(app_id)).status == APPLIED
    assert await seed.activities() == []


async def test_first_review_happens_once_across_sweeps(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=40))
    engine = make_engine()

    first = await engine.run_sweep(NOW)
    second = await engine.run_sweep(NOW + timedelta(seconds=1))

    assert first.processed_count == 1
    assert second.processed_count == 0
    assert (await seed.get(app_id)).status == REVIEWED
    assert len(await seed.activities(app_id)) == 1


async def test_processed_applied_record_is_not_reviewed_again(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(
        job_id=job_id,
        created_at=NOW - timedelta(seconds=40),
        last_processed=NOW - timedelta(seconds=5),
    )

    result = await make_engine().run_sweep(NOW)

    assert result.processed_count == 0
    assert (await seed.get(app_id)).status == APPLIED


@pytest.mark.parametrize(
    ("probability", "expected"),
    [(0.0, REJECTED), (1.0, INTERVIEW)],
)
async def test_interview_probability_boundaries(seed, make_engine, probability, expected):
    job_id = await seed.job()
    ids = [
        await seed.application(
            job_id=job_id,
            status=REVIEWED,
            created_at=NOW - timedelta(minutes=2),
            updated_at=NOW - timedelta(minutes=1, seconds=index),
            last_processed=NOW - timedelta(minutes=1, seconds=index),
        )
        for index in range(3)
    ]

    result = await make_engine(interview_probability=probability).run_sweep(NOW)

    assert result.per_rule[RULE_AUTO_SCHEDULE] == 3
    for app_id in ids:
        assert (await seed.get(app_id)).status == expected


async def test_scheduled_interview_uses_job_location(seed, make_engine):
    job_id = await seed.job(location="Lisbon")
    app_id = await seed.application(
        job_id=job_id,
        status=REVIEWED,
        created_at=NOW - timedelta(minutes=2),
        updated_at=NOW - timedelta(minutes=1),
    )

    await make_engine(draws=[0.1]).run_sweep(NOW)

    application = await seed.get(app_id)
    assert application.status == INTERVIEW
    assert application.interview_scheduled_at == NOW + timedelta(minutes=2)
    assert application.interview_location == "Lisbon"
    assert application.interview_notes == INTERVIEW_NOTES
    assert application.interview_created_at == NOW
    assert application.interview_created_by_person_id is None
    [entry] = await seed.activities(app_id)
    assert entry.action == ACTION_AUTO_SCHEDULE
    assert entry.comment.startswith("Interview automatically scheduled by AI system for 2026-03-02T12:02:00")


async def test_scheduled_interview_without_location_is_tbd(seed, make_engine):
    job_id = await seed.job(location=None)
    app_id = await seed.application(
        job_id=job_id,
        status=REVIEWED,
        created_at=NOW - timedelta(minutes=2),
        updated_at=NOW - timedelta(minutes=1),
    )

    await make_engine(interview_probability=1.0).run_sweep(NOW)

    assert (await seed.get(app_id)).interview_location == "TBD"


async def test_interview_outcome_applies_to_non_technical_roles(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(
        job_id=job_id,
        role_type=NON_TECHNICAL,
        status=INTERVIEW,
        created_at=NOW - timedelta(minutes=3),
        updated_at=NOW - timedelta(minutes=2),
    )

    result = await make_engine(offer_probability=1.0).run_sweep(NOW)

    assert result.per_rule[RULE_INTERVIEW_OUTCOME] == 1
    assert (await seed.get(app_id)).status == OFFER
    [entry] = await seed.activities(app_id)
    assert (entry.previous_status, entry.new_status, entry.action) == (INTERVIEW, OFFER, ACTION_AUTO_OFFER)


async def test_non_technical_applications_only_time_out(seed, make_engine):
    job_id = await seed.job()
    young = await seed.application(job_id=job_id, role_type=NON_TECHNICAL, created_at=NOW - timedelta(minutes=4))
    old = await seed.application(job_id=job_id, role_type=NON_TECHNICAL, created_at=NOW - timedelta(minutes=5))

    result = await make_engine().run_sweep(NOW)

    assert result.per_rule[RULE_AUTO_REVIEW] == 0
    assert result.per_rule[RULE_STALE_TIMEOUT] == 1
    assert (await seed.get(young)).status == APPLIED
    assert (await seed.get(old)).status == REJECTED
    [entry] = await seed.activities(old)
    assert entry.action == ACTION_AUTO_TIMEOUT


async def test_stale_reviewed_application_times_out_even_if_processed(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(
        job_id=job_id,
        status=REVIEWED,
        created_at=NOW - timedelta(minutes=6),
        updated_at=NOW - timedelta(seconds=10),
        last_processed=NOW - timedelta(seconds=10),
    )

    result = await make_engine().run_sweep(NOW)

    assert result.per_rule[RULE_STALE_TIMEOUT] == 1
    assert (await seed.get(app_id)).status == REJECTED


async def test_record_advanced_earlier_in_sweep_is_not_timed_out(seed, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(minutes=10))

    result = await make_engine().run_sweep(NOW)

    assert result.per_rule == {
        RULE_AUTO_REVIEW: 1,
        RULE_AUTO_SCHEDULE: 0,
        RULE_INTERVIEW_OUTCOME: 0,
        RULE_STALE_TIMEOUT: 0,
    }
    assert (await seed.get(app_id)).status == REVIEWED
    assert len(await seed.activities(app_id)) == 1

    # The next tick sees it as a stale Reviewed record.
    follow_up = await make_engine().run_sweep(NOW + timedelta(seconds=10))
    assert follow_up.per_rule[RULE_STALE_TIMEOUT] == 1
    assert (await seed.get(app_id)).status == REJECTED


async def test_terminal_records_are_never_touched(seed, make_engine):
    job_id = await seed.job()
    ancient = NOW - timedelta(days=90)
    ids = [
        await seed.application(job_id=job_id, status=status, created_at=ancient, updated_at=ancient)
        for status in (OFFER, REJECTED)
    ]

    engine = make_engine(interview_probability=1.0, offer_probability=1.0)
    for tick in range(3):
        result = await engine.run_sweep(NOW + timedelta(minutes=tick))
        assert result.processed_count == 0

    for app_id, status in zip(ids, (OFFER, REJECTED)):
        application = await seed.get(app_id)
        assert application.status == status
        assert application.updated_at == ancient
        assert application.last_processed is None
    assert await seed.activities() == []


async def test_orphaned_application_is_skipped(seed, make_engine):
    app_id = await seed.application(job_id=9999, created_at=NOW - timedelta(minutes=10))

    result = await make_engine().run_sweep(NOW)

    assert result.processed_count == 0
    assert result.skipped_count == 2  # matched by both the review and the timeout rule
    application = await seed.get(app_id)
    assert application.status == APPLIED
    assert application.last_processed is None


async def test_every_engine_transition_has_one_matching_audit_entry(seed, make_engine):
    job_id = await seed.job()
    created = NOW - timedelta(minutes=3)
    ids = [
        await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=45)),
        await seed.application(job_id=job_id, status=REVIEWED, created_at=created, updated_at=NOW - timedelta(minutes=1)),
        await seed.application(job_id=job_id, status=INTERVIEW, created_at=created, updated_at=NOW - timedelta(minutes=2)),
        await seed.application(job_id=job_id, role_type=NON_TECHNICAL, created_at=NOW - timedelta(minutes=8)),
    ]
    before = {app_id: (await seed.get(app_id)).status for app_id in ids}

    result = await make_engine(draws=[0.3, 0.9]).run_sweep(NOW)

    assert result.processed_count == 4
    for app_id in ids:
        after = await seed.get(app_id)
        [entry] = await seed.activities(app_id)
        assert entry.previous_status == before[app_id]
        assert entry.new_status == after.status
        assert entry.timestamp == after.updated_at == after.last_processed == NOW
        assert len(await seed.comments(app_id)) == 1


async def test_failed_persist_writes_no_audit_entry_and_sweep_continues(seed, session_factory, make_engine):
    job_id = await seed.job()
    broken = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=50))
    healthy = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=40))
    engine = make_engine(repository=FlakyRepository(session_factory, fail_for={broken}))

    result = await engine.run_sweep(NOW)

    assert result.processed_count == 1
    assert result.failed_count == 1
    assert (await seed.get(broken)).status == APPLIED
    assert await seed.activities(broken) == []
    assert await seed.comments(broken) == []
    assert (await seed.get(healthy)).status == REVIEWED
    assert len(await seed.activities(healthy)) == 1


async def test_failed_persist_is_retried_on_next_tick(seed, session_factory, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=50))
    repository = FlakyRepository(session_factory, fail_for={app_id})
    engine = make_engine(repository=repository)

    await engine.run_sweep(NOW)
    repository.fail_for.clear()
    result = await engine.run_sweep(NOW + timedelta(seconds=10))

    assert result.processed_count == 1
    assert (await seed.get(app_id)).status == REVIEWED


async def test_audit_failure_keeps_status_change(seed, session_factory, make_engine):
    job_id = await seed.job()
    unlogged = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=50))
    logged = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=40))
    recorder = FlakyRecorder(session_factory, fail_for={unlogged})

    result = await make_engine(recorder=recorder).run_sweep(NOW)

    assert result.processed_count == 2
    assert result.failed_count == 0
    assert (await seed.get(unlogged)).status == REVIEWED
    assert await seed.activities(unlogged) == []
    assert len(await seed.activities(logged)) == 1
    assert [entry.application_id for entry in recorder.attempts] == [unlogged, logged]


async def test_failed_candidate_query_skips_only_that_rule(seed, session_factory, make_engine):
    job_id = await seed.job()
    await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=50))
    interviewing = await seed.application(
        job_id=job_id,
        status=INTERVIEW,
        created_at=NOW - timedelta(minutes=3),
        updated_at=NOW - timedelta(minutes=2),
    )
    engine = make_engine(repository=BrokenQueryRepository(session_factory), offer_probability=1.0)

    result = await engine.run_sweep(NOW)

    assert result.failed_count == 1
    assert result.per_rule[RULE_AUTO_REVIEW] == 0
    assert result.per_rule[RULE_INTERVIEW_OUTCOME] == 1
    assert (await seed.get(interviewing)).status == OFFER


async def test_conditional_update_loses_to_concurrent_writer(seed, session_factory):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(minutes=1))
    repository = SqlApplicationRepository(session_factory)

    first = await repository.apply_transition(
        StatusTransition(application_id=app_id, expected_status=APPLIED, new_status=REVIEWED, processed_at=NOW, comment="first")
    )
    second = await repository.apply_transition(
        StatusTransition(application_id=app_id, expected_status=APPLIED, new_status=REJECTED, processed_at=NOW, comment="second")
    )

    assert first is True
    assert second is False
    assert (await seed.get(app_id)).status == REVIEWED
    assert [comment.text for comment in await seed.comments(app_id)] == ["first"]


async def test_stale_snapshot_is_a_noop_without_audit(seed, session_factory, make_engine):
    job_id = await seed.job()
    app_id = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=50))
    repository = SqlApplicationRepository(session_factory)
    [snapshot] = await repository.find_by_ids([app_id])

    # Someone else reviews the record after the snapshot was taken.
    await repository.apply_transition(
        StatusTransition(application_id=app_id, expected_status=APPLIED, new_status=REJECTED, processed_at=NOW)
    )

    engine = make_engine(repository=repository)
    outcome = await engine._advance(snapshot, engine.policy.manual_review(), NOW)

    assert outcome == "conflict"
    assert (await seed.get(app_id)).status == REJECTED
    assert await seed.activities(app_id) == []


async def test_sweep_window_boundary_is_inclusive(seed, make_engine):
    job_id = await seed.job()
    exact = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=30))
    short = await seed.application(job_id=job_id, created_at=NOW - timedelta(seconds=30) + timedelta(milliseconds=1))

    result = await make_engine().run_sweep(NOW)

    assert result.per_rule[RULE_AUTO_REVIEW] == 1
    assert (await seed.get(exact)).status == REVIEWED
    assert (await seed.get(short)).status == APPLIED


async def test_schedule_window_boundary_uses_updated_at(seed, make_engine):
    job_id = await seed.job()
    created = NOW - timedelta(minutes=3)
    exact = await seed.application(job_id=job_id, status=REVIEWED, created_at=created, updated_at=NOW - timedelta(minutes=1))
    short = await seed.application(
        job_id=job_id,
        status=REVIEWED,
        created_at=created,
        updated_at=NOW - timedelta(minutes=1) + timedelta(milliseconds=1),
    )

    await make_engine(interview_probability=1.0).run_sweep(NOW)

    assert (await seed.get(exact)).status == INTERVIEW
    assert (await seed.get(short)).status == REVIEWED


async def test_orm_edit_refreshes_updated_at(seed, session_factory, make_engine):
    job_id = await seed.job()
    stale = NOW - timedelta(days=1)
    app_id = await seed.application(job_id=job_id, status=REVIEWED, created_at=stale, updated_at=stale)

    async with session_factory() as session:
        application = await session.get(Application, app_id)
        application.interview_notes = "Candidate asked to reschedule"
        await session.commit()

    edited = await seed.get(app_id)
    assert edited.updated_at > stale

    # A fresh edit restarts the scheduling window.
    result = await make_engine().run_sweep(edited.updated_at + timedelta(seconds=30))
    assert result.per_rule[RULE_AUTO_SCHEDULE] == 0
