# wasteroute/core/states.py
from enum import Enum

from wasteroute.core.roles import Role, as_role


class Status(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RouteStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"


PICKUP_STATES = [s.value for s in Status]

# pending -> assigned is missing on purpose: only assignment creates it.
TRANSITIONS = {
    (Status.PENDING.value,     Status.CANCELLED.value):   {"roles": [Role.REQUESTER]},
    (Status.ASSIGNED.value,    Status.IN_PROGRESS.value): {"roles": [Role.COLLECTOR]},
    (Status.ASSIGNED.value,    Status.CANCELLED.value):   {"roles": [Role.COLLECTOR]},
    (Status.IN_PROGRESS.value, Status.COMPLETED.value):   {"roles": [Role.COLLECTOR]},
    (Status.IN_PROGRESS.value, Status.CANCELLED.value):   {"roles": [Role.COLLECTOR]},
}


def can_transition(src: str, dst: str, role) -> bool:
    """Administrators may force any transition; everyone else follows TRANSITIONS."""
    role = as_role(role)
    if role is Role.ADMINISTRATOR:
        return True
    if role is None:
        return False
    rule = TRANSITIONS.get((src, dst))
    if not rule:
        return False
    return role in rule["roles"]
