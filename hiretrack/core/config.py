from __future__ import annotations

import os
from typing import Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INTERVIEW_PROBABILITY = 0.7
DEFAULT_OFFER_PROBABILITY = 0.6
DEFAULT_INTERVIEW_OFFSET_MS = 2 * 60 * 1000
DEFAULT_PROCESS_INTERVAL_MS = 10 * 1000
DEFAULT_AUTO_REVIEW_WINDOW_MS = 30 * 1000
DEFAULT_AUTO_SCHEDULE_WINDOW_MS = 60 * 1000
DEFAULT_INTERVIEW_OUTCOME_WINDOW_MS = 2 * 60 * 1000
DEFAULT_STALE_TIMEOUT_WINDOW_MS = 5 * 60 * 1000

_PROBABILITY_FIELDS = ("interview_probability", "offer_probability")
_DURATION_FIELDS = (
    "interview_offset_ms",
    "auto_review_window_ms",
    "auto_schedule_window_ms",
    "interview_outcome_window_ms",
    "stale_timeout_window_ms",
)


def _env_files() -> list[str]:
    env = os.getenv("HT_ENVIRONMENT", "").strip().lower()
    files = [".env"]
    if env and env != "development":
        files.append(f".env.{env}")
    else:
        files.append(".env.local")
    return files


def parse_probability(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number < 0 or number > 1:
        return default
    return number


def parse_duration_ms(value: Any, default: int, *, allow_zero: bool = True) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if number < 0 or (number == 0 and not allow_zero):
        return default
    return number


class Settings(BaseSettings):
    app_name: str = "HireTrack"
    environment: str = "development"

    database_url: str = "sqlite+aiosqlite:///./hiretrack.db"
    redis_url: str = ""

    auto_processor_enabled: bool = True

    interview_probability: float = Field(
        default=DEFAULT_INTERVIEW_PROBABILITY,
        validation_alias=AliasChoices("HT_AUTO_INTERVIEW_PROB", "AUTO_INTERVIEW_PROB"),
    )
    offer_probability: float = Field(
        default=DEFAULT_OFFER_PROBABILITY,
        validation_alias=AliasChoices("HT_AUTO_OFFER_PROB", "AUTO_OFFER_PROB"),
    )
    interview_offset_ms: int = Field(
        default=DEFAULT_INTERVIEW_OFFSET_MS,
        validation_alias=AliasChoices("HT_AUTO_INTERVIEW_OFFSET_MS", "AUTO_INTERVIEW_OFFSET_MS"),
    )
    process_interval_ms: int = Field(
        default=DEFAULT_PROCESS_INTERVAL_MS,
        validation_alias=AliasChoices("HT_AUTO_PROCESS_INTERVAL_MS", "AUTO_PROCESS_INTERVAL_MS"),
    )
    auto_review_window_ms: int = DEFAULT_AUTO_REVIEW_WINDOW_MS
    auto_schedule_window_ms: int = DEFAULT_AUTO_SCHEDULE_WINDOW_MS
    interview_outcome_window_ms: int = DEFAULT_INTERVIEW_OUTCOME_WINDOW_MS
    stale_timeout_window_ms: int = DEFAULT_STALE_TIMEOUT_WINDOW_MS

    model_config = SettingsConfigDict(
        env_prefix="HT_",
        env_file=_env_files(),
        extra="ignore",
        populate_by_name=True,
    )

    # Bad tuning values never stop the service; they fall back to the documented defaults.
    @field_validator(*_PROBABILITY_FIELDS, mode="before")
    @classmethod
    def _coerce_probability(cls, value: Any, info: ValidationInfo) -> float:
        return parse_probability(value, cls.model_fields[info.field_name].default)

    @field_validator(*_DURATION_FIELDS, mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any, info: ValidationInfo) -> int:
        return parse_duration_ms(value, cls.model_fields[info.field_name].default)

    @field_validator("process_interval_ms", mode="before")
    @classmethod
    def _coerce_interval(cls, value: Any) -> int:
        return parse_duration_ms(value, DEFAULT_PROCESS_INTERVAL_MS, allow_zero=False)

    @property
    def process_interval_seconds(self) -> float:
        return self.process_interval_ms / 1000


settings = Settings()
