# wasteroute/core/policy.py
from typing import Any, Dict

from wasteroute.core.query import RequestQuery
from wasteroute.core.roles import Role, as_role
from wasteroute.core.states import Status


def can_modify(request: Dict[str, Any], actor_id: str, actor_role) -> bool:
    """The single authorization gate for every mutation of a pickup request."""
    role = as_role(actor_role)
    if role is Role.ADMINISTRATOR:
        return True
    if role is Role.COLLECTOR:
        collector = request.get("assigned_collector")
        return collector is not None and collector == actor_id
    if role is Role.REQUESTER:
        owner = request.get("requester_id")
        return owner is not None and owner == actor_id and request.get("status") == Status.PENDING.value
    return False


def can_cancel(request: Dict[str, Any], actor_id: str, actor_role) -> bool:
    # owner-while-pending or administrator; collectors cancel through a status update
    if as_role(actor_role) is Role.COLLECTOR:
        return False
    return can_modify(request, actor_id, actor_role)


def visibility_scope(actor_role, actor_id: str) -> RequestQuery:
    role = as_role(actor_role)
    if role is Role.ADMINISTRATOR:
        return RequestQuery()
    if role is Role.COLLECTOR:
        return RequestQuery(assigned_collector=actor_id)
    if role is Role.REQUESTER:
        return RequestQuery(requester_id=actor_id)
    return RequestQuery(deny_all=True)


def can_view(request: Dict[str, Any], actor_id: str, actor_role) -> bool:
    return visibility_scope(actor_role, actor_id).matches(request)
