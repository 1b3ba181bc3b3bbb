from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hiretrack.core.application_status import (
    APPLIED,
    PERFORMED_BY_AI_SYSTEM,
    TECHNICAL,
    can_transition,
    is_terminal_status,
    normalize_role_type,
    normalize_status,
)
from hiretrack.core.config import Settings
from hiretrack.core.datetime_utils import to_utc_naive
from hiretrack.services.activity_log import ActivityLogEntry, ActivityRecorder, SqlActivityRecorder
from hiretrack.services.application_repository import (
    ApplicationRepository,
    SqlApplicationRepository,
    StatusTransition,
)
from hiretrack.services.decision_policy import Decision, DecisionPolicy, RandomSource
from hiretrack.services.eligibility import ProgressionRule, build_rules, is_eligible
from hiretrack.services.event_bus import EventBus, event_bus

logger = logging.getLogger("hiretrack.autoprocessor")

OUTCOME_ADVANCED = "advanced"
OUTCOME_CONFLICT = "conflict"
OUTCOME_FAILED = "failed"
OUTCOME_NOOP = "noop"


@dataclass
class SweepResult:
    processed_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    per_rule: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ManualRunResult:
    processed: int
    total: int


class ProgressionEngine:
    """Advances applications through the hiring pipeline.

    Every write goes through `ApplicationRepository.apply_transition`, which only
    commits when the stored status still matches what this engine read. The
    audit entry is written after that commit and never undoes it.
    """

    def __init__(
        self,
        *,
        repository: ApplicationRepository,
        recorder: ActivityRecorder,
        policy: DecisionPolicy,
        rules: Sequence[ProgressionRule],
    ) -> None:
        self.repository = repository
        self.recorder = recorder
        self.policy = policy
        self.rules = tuple(rules)

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        random_source: RandomSource | None = None,
        bus: EventBus | None = event_bus,
    ) -> "ProgressionEngine":
        return cls(
            repository=SqlApplicationRepository(session_factory),
            recorder=SqlActivityRecorder(session_factory, bus=bus),
            policy=DecisionPolicy.from_settings(config, random_source=random_source),
            rules=build_rules(config),
        )

    async def run_sweep(self, now: datetime) -> SweepResult:
        now = to_utc_naive(now)
        result = SweepResult()
        advanced_ids: set[int] = set()

        for rule in self.rules:
            result.per_rule[rule.name] = 0
            try:
                candidates = await self.repository.find_by_rule(**rule.query_bounds(now))
            except Exception:  # noqa: BLE001
                # Unchanged records are picked up again on the next tick.
                logger.exception("candidate_query_failed", extra={"rule": rule.name})
                result.failed_count += 1
                continue

            for application in candidates:
                if rule.skip_if_advanced_in_sweep and application.application_id in advanced_ids:
                    continue
                if not is_eligible(rule, application, now):
                    continue
                job = application.job
                if job is None:
                    logger.warning(
                        "application_skipped_orphaned",
                        extra={"application_id": application.application_id, "job_id": application.job_id},
                    )
                    result.skipped_count += 1
                    continue

                decision = self.policy.decide(rule, now=now, job_location=job.location)
                outcome = await self._advance(application, decision, now)
                if outcome == OUTCOME_ADVANCED:
                    advanced_ids.add(application.application_id)
                    result.per_rule[rule.name] += 1
                    result.processed_count += 1
                elif outcome == OUTCOME_FAILED:
                    result.failed_count += 1

        if result.processed_count or result.failed_count:
            logger.info(
                "sweep_completed",
                extra={
                    "processed": result.processed_count,
                    "skipped": result.skipped_count,
                    "failed": result.failed_count,
                    "per_rule": result.per_rule,
                },
            )
        return result

    async def trigger_manual(
        self,
        actor_person_id: int,
        application_ids: Iterable[int],
        now: datetime,
    ) -> ManualRunResult:
        """Review the actor's own Applied technical applications now, ignoring the dwell window.

        Applications on other people's jobs, or whose job no longer exists, are
        left out of `total` without raising.
        """
        now = to_utc_naive(now)
        applications = await self.repository.find_by_ids(application_ids)
        owned = [
            application
            for application in applications
            if application.job is not None and application.job.created_by_person_id == actor_person_id
        ]

        processed = 0
        for application in owned:
            if normalize_role_type(application.role_type) != TECHNICAL:
                continue
            if normalize_status(application.status) != APPLIED:
                continue
            outcome = await self._advance(
                application,
                self.policy.manual_review(),
                now,
                actor_person_id=actor_person_id,
            )
            if outcome == OUTCOME_ADVANCED:
                processed += 1

        logger.info(
            "manual_trigger_completed",
            extra={
                "actor_person_id": actor_person_id,
                "requested": len(applications),
                "total": len(owned),
                "processed": processed,
            },
        )
        return ManualRunResult(processed=processed, total=len(owned))

    async def _advance(
        self,
        application: Any,
        decision: Decision,
        now: datetime,
        *,
        actor_person_id: int | None = None,
    ) -> str:
        previous_status = normalize_status(application.status)
        if is_terminal_status(previous_status) or not can_transition(previous_status, decision.target_status):
            return OUTCOME_NOOP

        transition = StatusTransition(
            application_id=application.application_id,
            expected_status=previous_status,
            new_status=decision.target_status,
            processed_at=now,
            comment=decision.comment,
            comment_author_person_id=actor_person_id,
            interview=decision.interview,
        )
        try:
            committed = await self.repository.apply_transition(transition)
        except Exception:  # noqa: BLE001
            logger.exception(
                "application_update_failed",
                extra={"application_id": application.application_id, "to_status": decision.target_status},
            )
            return OUTCOME_FAILED

        if not committed:
            logger.info(
                "application_update_conflict",
                extra={"application_id": application.application_id, "expected_status": previous_status},
            )
            return OUTCOME_CONFLICT

        application.status = decision.target_status
        application.last_processed = now
        application.updated_at = now

        entry = ActivityLogEntry(
            application_id=application.application_id,
            actor_person_id=actor_person_id,
            action=decision.action,
            previous_status=previous_status,
            new_status=decision.target_status,
            comment=decision.comment,
            performed_by=PERFORMED_BY_AI_SYSTEM,
            timestamp=now,
        )
        try:
            await self.recorder.record(entry)
        except Exception:  # noqa: BLE001
            logger.exception(
                "activity_log_failed",
                extra={"application_id": application.application_id, "action": decision.action},
            )

        logger.info(
            "application_auto_processed",
            extra={
                "application_id": application.application_id,
                "from_status": previous_status,
                "to_status": decision.target_status,
                "action": decision.action,
            },
        )
        return OUTCOME_ADVANCED
