# wasteroute/core/roles.py
from enum import Enum
from typing import Optional


class Role(str, Enum):
    REQUESTER = "requester"
    COLLECTOR = "collector"
    ADMINISTRATOR = "administrator"


def as_role(value) -> Optional[Role]:
    """Resolve a stored or supplied role; anything unrecognized is None."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None
