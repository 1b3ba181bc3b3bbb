from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hiretrack.core.datetime_utils import utc_now_naive
from hiretrack.db.base import Base


class ActivityLog(Base):
    """
    Append-only audit trail: one row per application status transition.
    """

    __tablename__ = "activity_log"

    activity_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(Integer, index=True)
    actor_person_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    action: Mapped[str] = mapped_column(String(100), index=True)
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str] = mapped_column(String(32), index=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, index=True)
