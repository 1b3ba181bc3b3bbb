from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from hiretrack.core.application_status import INTERVIEW, OFFER, REJECTED, REVIEWED
from hiretrack.core.config import Settings
from hiretrack.core.datetime_utils import ms
from hiretrack.services.eligibility import (
    RULE_AUTO_REVIEW,
    RULE_AUTO_SCHEDULE,
    RULE_INTERVIEW_OUTCOME,
    RULE_STALE_TIMEOUT,
    ProgressionRule,
)

ACTION_AUTO_REVIEW = "AI Auto-Review"
ACTION_AUTO_SCHEDULE = "AI Auto-Schedule"
ACTION_AUTO_REJECT = "AI Auto-Reject"
ACTION_AUTO_OFFER = "AI Auto-Offer"
ACTION_POST_INTERVIEW_REJECT = "AI Post-Interview-Reject"
ACTION_AUTO_TIMEOUT = "AI Auto-Timeout"
ACTION_MANUAL_REVIEW = "Admin-Triggered AI Review"

COMMENT_AUTO_REVIEW = "Application automatically reviewed by AI system for technical role"
COMMENT_AUTO_SCHEDULE = "Interview automatically scheduled by AI system for {scheduled_at}"
COMMENT_AUTO_REJECT = "Application automatically rejected by AI system - insufficient technical qualifications"
COMMENT_AUTO_OFFER = "Job offer extended by AI system after successful interview evaluation"
COMMENT_POST_INTERVIEW_REJECT = (
    "Application rejected by AI system after interview evaluation - cultural fit assessment"
)
COMMENT_AUTO_TIMEOUT = "Application automatically rejected due to extended processing time"
COMMENT_MANUAL_REVIEW = "Application manually processed by admin via AI system"

INTERVIEW_NOTES = "Automatically scheduled by AI system"
DEFAULT_INTERVIEW_LOCATION = "TBD"

RandomSource = Callable[[], float]


@dataclass(frozen=True)
class InterviewDetails:
    scheduled_at: datetime
    location: str
    notes: str
    created_at: datetime
    created_by_person_id: int | None = None


@dataclass(frozen=True)
class Decision:
    target_status: str
    action: str
    comment: str
    interview: InterviewDetails | None = None


def format_schedule_time(value: datetime) -> str:
    return f"{value.isoformat(timespec='milliseconds')}Z"


class DecisionPolicy:
    """Picks the next status for a record that a rule found eligible.

    The random source must return floats in [0, 1); a draw strictly below the
    configured probability selects the favourable outcome, so 0.0 never does
    and 1.0 always does.
    """

    def __init__(
        self,
        *,
        interview_probability: float,
        offer_probability: float,
        interview_offset: timedelta,
        random_source: RandomSource | None = None,
    ) -> None:
        self.interview_probability = interview_probability
        self.offer_probability = offer_probability
        self.interview_offset = interview_offset
        self._random = random_source or random.random

    @classmethod
    def from_settings(cls, config: Settings, random_source: RandomSource | None = None) -> "DecisionPolicy":
        return cls(
            interview_probability=config.interview_probability,
            offer_probability=config.offer_probability,
            interview_offset=ms(config.interview_offset_ms),
            random_source=random_source,
        )

    def decide(self, rule: ProgressionRule, *, now: datetime, job_location: str | None = None) -> Decision:
        if rule.name == RULE_AUTO_REVIEW:
            return Decision(target_status=REVIEWED, action=ACTION_AUTO_REVIEW, comment=COMMENT_AUTO_REVIEW)
        if rule.name == RULE_AUTO_SCHEDULE:
            return self._decide_interview(now=now, job_location=job_location)
        if rule.name == RULE_INTERVIEW_OUTCOME:
            return self._decide_offer()
        if rule.name == RULE_STALE_TIMEOUT:
            return Decision(target_status=REJECTED, action=ACTION_AUTO_TIMEOUT, comment=COMMENT_AUTO_TIMEOUT)
        raise ValueError(f"Unsupported rule: {rule.name}")

    def manual_review(self) -> Decision:
        return Decision(target_status=REVIEWED, action=ACTION_MANUAL_REVIEW, comment=COMMENT_MANUAL_REVIEW)

    def _decide_interview(self, *, now: datetime, job_location: str | None) -> Decision:
        if self._random() < self.interview_probability:
            scheduled_at = now + self.interview_offset
            return Decision(
                target_status=INTERVIEW,
                action=ACTION_AUTO_SCHEDULE,
                comment=COMMENT_AUTO_SCHEDULE.format(scheduled_at=format_schedule_time(scheduled_at)),
                interview=InterviewDetails(
                    scheduled_at=scheduled_at,
                    location=(job_location or "").strip() or DEFAULT_INTERVIEW_LOCATION,
                    notes=INTERVIEW_NOTES,
                    created_at=now,
                ),
            )
        return Decision(target_status=REJECTED, action=ACTION_AUTO_REJECT, comment=COMMENT_AUTO_REJECT)

    def _decide_offer(self) -> Decision:
        if self._random() < self.offer_probability:
            return Decision(target_status=OFFER, action=ACTION_AUTO_OFFER, comment=COMMENT_AUTO_OFFER)
        return Decision(
            target_status=REJECTED,
            action=ACTION_POST_INTERVIEW_REJECT,
            comment=COMMENT_POST_INTERVIEW_REJECT,
        )
