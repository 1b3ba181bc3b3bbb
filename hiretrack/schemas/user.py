from typing import List, Optional

from pydantic import BaseModel

from hiretrack.core.roles import Role


class UserContext(BaseModel):
    person_id: int
    roles: List[Role]
    email: Optional[str] = None
