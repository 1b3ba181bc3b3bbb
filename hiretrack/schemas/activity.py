from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ActivityLogOut(BaseModel):
    activity_id: int
    application_id: int
    actor_person_id: Optional[int] = None
    action: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    comment: Optional[str] = None
    performed_by: str
    timestamp: datetime

    class Config:
        from_attributes = True
