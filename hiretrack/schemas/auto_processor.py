from typing import List

from pydantic import BaseModel


class TriggerAIProcessIn(BaseModel):
    application_ids: List[int] = []


class TriggerAIProcessOut(BaseModel):
    message: str = "AI processing completed"
    processed: int
    total: int
