"""User roles and their privilege ordering."""

from enum import Enum
from typing import Optional, Union


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


_RANKS = {
    Role.STUDENT: 1,
    Role.TEACHER: 2,
    Role.ADMIN: 3,
}


def parse_role(value: Union[str, Role, None]) -> Optional[Role]:
    """Return the matching ``Role`` or ``None`` for anything unrecognised."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def role_rank(value: Union[str, Role, None]) -> int:
    """Rank of a role in the order admin > teacher > student.

    Unknown values rank ``0`` so they never satisfy a requirement.
    """
    role = parse_role(value)
    if role is None:
        return 0
    return _RANKS[role]


def has_role(actual: Union[str, Role, None], required: Union[str, Role, None]) -> bool:
    """True when ``actual`` ranks at least as high as ``required``."""
    required_rank = role_rank(required)
    if required_rank == 0:
        return False
    return role_rank(actual) >= required_rank
