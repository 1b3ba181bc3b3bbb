from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from hiretrack.core.application_status import (
    APPLIED,
    INTERVIEW,
    REVIEWED,
    TECHNICAL,
    normalize_role_type,
    normalize_status,
)
from hiretrack.core.config import Settings
from hiretrack.core.datetime_utils import ms, to_utc_naive

RULE_AUTO_REVIEW = "auto_review"
RULE_AUTO_SCHEDULE = "auto_schedule"
RULE_INTERVIEW_OUTCOME = "interview_outcome"
RULE_STALE_TIMEOUT = "stale_timeout"

REFERENCE_CREATED_AT = "created_at"
REFERENCE_UPDATED_AT = "updated_at"


class EligibilityRecord(Protocol):
    status: str
    role_type: str
    created_at: datetime
    updated_at: datetime
    last_processed: datetime | None


@dataclass(frozen=True)
class ProgressionRule:
    name: str
    source_statuses: frozenset[str]
    window: timedelta
    reference: str = REFERENCE_UPDATED_AT
    role_type: str | None = None
    exclude_if_processed: bool = False
    # Only the catch-all timeout needs this: it shares source statuses with the earlier rules.
    skip_if_advanced_in_sweep: bool = False

    def cutoff(self, now: datetime) -> datetime:
        return now - self.window

    def query_bounds(self, now: datetime) -> dict[str, Any]:
        bounds: dict[str, Any] = {
            "source_statuses": self.source_statuses,
            "role_type": self.role_type,
            "exclude_if_processed": self.exclude_if_processed,
        }
        if self.reference == REFERENCE_CREATED_AT:
            bounds["created_before"] = self.cutoff(now)
        else:
            bounds["updated_before"] = self.cutoff(now)
        return bounds


def build_rules(config: Settings) -> tuple[ProgressionRule, ...]:
    """The four automatic rules, in sweep order."""
    return (
        ProgressionRule(
            name=RULE_AUTO_REVIEW,
            source_statuses=frozenset({APPLIED}),
            window=ms(config.auto_review_window_ms),
            reference=REFERENCE_CREATED_AT,
            role_type=TECHNICAL,
            exclude_if_processed=True,
        ),
        ProgressionRule(
            name=RULE_AUTO_SCHEDULE,
            source_statuses=frozenset({REVIEWED}),
            window=ms(config.auto_schedule_window_ms),
            reference=REFERENCE_UPDATED_AT,
            role_type=TECHNICAL,
        ),
        ProgressionRule(
            name=RULE_INTERVIEW_OUTCOME,
            source_statuses=frozenset({INTERVIEW}),
            window=ms(config.interview_outcome_window_ms),
            reference=REFERENCE_UPDATED_AT,
        ),
        ProgressionRule(
            name=RULE_STALE_TIMEOUT,
            source_statuses=frozenset({APPLIED, REVIEWED}),
            window=ms(config.stale_timeout_window_ms),
            reference=REFERENCE_CREATED_AT,
            skip_if_advanced_in_sweep=True,
        ),
    )


def reference_timestamp(rule: ProgressionRule, record: EligibilityRecord) -> datetime | None:
    if rule.reference == REFERENCE_CREATED_AT:
        return record.created_at
    return record.updated_at


def is_eligible(rule: ProgressionRule, record: EligibilityRecord, now: datetime) -> bool:
    if normalize_status(record.status) not in rule.source_statuses:
        return False
    if rule.role_type is not None and normalize_role_type(record.role_type) != rule.role_type:
        return False
    if rule.exclude_if_processed and record.last_processed is not None:
        return False
    reference = reference_timestamp(rule, record)
    if reference is None:
        return False
    return to_utc_naive(now) - to_utc_naive(reference) >= rule.window
