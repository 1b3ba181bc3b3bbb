from __future__ import annotations

from typing import Iterable


# Canonical application statuses, stored verbatim in the `status` column.
APPLIED = "Applied"
REVIEWED = "Reviewed"
INTERVIEW = "Interview"
OFFER = "Offer"
REJECTED = "Rejected"


ALL_STATUSES: tuple[str, ...] = (
    APPLIED,
    REVIEWED,
    INTERVIEW,
    OFFER,
    REJECTED,
)


TERMINAL_STATUSES: frozenset[str] = frozenset({OFFER, REJECTED})


TECHNICAL = "Technical"
NON_TECHNICAL = "Non-Technical"

ALL_ROLE_TYPES: tuple[str, ...] = (TECHNICAL, NON_TECHNICAL)


# Who performed an audited transition.
PERFORMED_BY_ADMIN = "Admin"
PERFORMED_BY_BOT = "Bot"
PERFORMED_BY_APPLICANT = "Applicant"
PERFORMED_BY_AI_SYSTEM = "AI System"

ALL_PERFORMERS: tuple[str, ...] = (
    PERFORMED_BY_ADMIN,
    PERFORMED_BY_BOT,
    PERFORMED_BY_APPLICANT,
    PERFORMED_BY_AI_SYSTEM,
)


_STATUS_LOOKUP = {status.lower(): status for status in ALL_STATUSES}

_ROLE_TYPE_LOOKUP = {
    **{role_type.lower(): role_type for role_type in ALL_ROLE_TYPES},
    "non_technical": NON_TECHNICAL,
    "nontechnical": NON_TECHNICAL,
    "non technical": NON_TECHNICAL,
}


# Explicit state diagram:
# each key can only move to the listed next statuses.
STATUS_GRAPH: dict[str, frozenset[str]] = {
    APPLIED: frozenset({REVIEWED, REJECTED}),
    REVIEWED: frozenset({INTERVIEW, REJECTED}),
    INTERVIEW: frozenset({OFFER, REJECTED}),
    OFFER: frozenset(),
    REJECTED: frozenset(),
}


def normalize_status(raw: str | None) -> str | None:
    if raw is None:
        return None
    normalized = raw.strip().lower()
    if not normalized:
        return None
    return _STATUS_LOOKUP.get(normalized)


def normalize_role_type(raw: str | None) -> str | None:
    if raw is None:
        return None
    normalized = raw.strip().lower()
    if not normalized:
        return None
    return _ROLE_TYPE_LOOKUP.get(normalized)


def is_known_status(status: str | None) -> bool:
    return normalize_status(status) is not None


def is_terminal_status(status: str | None) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def allowed_next_statuses(status: str | None) -> frozenset[str]:
    normalized = normalize_status(status)
    if normalized is None:
        return frozenset()
    return STATUS_GRAPH[normalized]


def can_transition(from_status: str | None, to_status: str | None) -> bool:
    from_normalized = normalize_status(from_status)
    to_normalized = normalize_status(to_status)

    if to_normalized is None:
        return False

    # Initial entry state for records that have no status yet.
    if from_normalized is None:
        return to_normalized == APPLIED

    if from_normalized in TERMINAL_STATUSES:
        return False

    if from_normalized == to_normalized:
        return False

    return to_normalized in STATUS_GRAPH[from_normalized]


def path_is_valid(path: Iterable[str]) -> bool:
    items = [normalize_status(item) for item in path]
    if len(items) < 2 or None in items:
        return False
    for index in range(len(items) - 1):
        if not can_transition(items[index], items[index + 1]):
            return False
    return True
