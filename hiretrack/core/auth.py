from __future__ import annotations

from typing import Iterable

from fastapi import Depends, HTTPException, Request, status

from hiretrack.core.roles import Role, has_required_role, parse_roles
from hiretrack.schemas.user import UserContext


async def get_current_user(request: Request) -> UserContext:
    # Identity is asserted by the gateway in front of this service:
    # - X-User-Id: 42
    # - X-User-Roles: admin
    # - X-User-Email: admin@example.com (optional)
    raw_id = (request.headers.get("x-user-id") or "").strip()
    if not raw_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")
    try:
        person_id = int(raw_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user identity")

    roles = parse_roles(request.headers.get("x-user-roles"))
    email = (request.headers.get("x-user-email") or "").strip().lower() or None
    return UserContext(person_id=person_id, roles=roles or [Role.APPLICANT], email=email)


def require_roles(required: Iterable[Role]):
    async def dependency(user: UserContext = Depends(get_current_user)) -> UserContext:
        if not has_required_role(user.roles, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return dependency
