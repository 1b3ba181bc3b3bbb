from enum import Enum
from typing import Iterable


class Role(str, Enum):
    ADMIN = "admin"
    APPLICANT = "applicant"
    BOT = "bot"


def parse_roles(raw: str | None) -> list[Role]:
    roles: list[Role] = []
    for item in (raw or "").split(","):
        value = item.strip().lower()
        if not value:
            continue
        try:
            role = Role(value)
        except ValueError:
            continue
        if role not in roles:
            roles.append(role)
    return roles


def has_required_role(user_roles: Iterable[Role], required: Iterable[Role]) -> bool:
    user_roles_set = {Role(r) for r in user_roles}
    required_set = {Role(r) for r in required}
    return bool(user_roles_set & required_set)
