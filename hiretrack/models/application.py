from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hiretrack.core.application_status import APPLIED
from hiretrack.core.datetime_utils import utc_now_naive
from hiretrack.db.base import Base
from hiretrack.models.job import Job


class Application(Base):
    """
    One applicant's application to one job. `last_processed` is written only by the auto-processor.
    """

    __tablename__ = "application"

    application_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No FK constraint: jobs can be deleted underneath their applications.
    job_id: Mapped[int] = mapped_column(Integer, index=True)
    applicant_person_id: Mapped[int] = mapped_column(Integer, index=True)

    role_type: Mapped[str] = mapped_column(String(32), index=True)
    status: Mapped[str] = mapped_column(String(32), default=APPLIED, index=True)

    interview_scheduled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    interview_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    interview_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    interview_created_by_person_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interview_created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive, index=True)
    last_processed: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    job: Mapped[Job | None] = relationship(
        Job,
        primaryjoin="foreign(Application.job_id) == Job.job_id",
        lazy="raise",
        viewonly=True,
    )


class ApplicationComment(Base):
    __tablename__ = "application_comment"

    comment_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("application.application_id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    # NULL author means the comment was written by the system.
    author_person_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
