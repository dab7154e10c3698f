# wasteroute/services/assignment.py
import logging
from datetime import date, datetime
from typing import List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from wasteroute.core.clock import day_start, utcnow
from wasteroute.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from wasteroute.core.policy import can_modify
from wasteroute.core.roles import Role, as_role
from wasteroute.core.states import Status
from wasteroute.repos.common import new_route_doc
from wasteroute.services.collections import ensure_not_past, load_request, status_event
from wasteroute.services.notifications import Notifier, notify_assignment, notify_status_change
from wasteroute.services.rollup import rollup_left_routes

logger = logging.getLogger(__name__)

ASSIGNABLE = {Status.PENDING.value, Status.ASSIGNED.value}


async def load_collector(repo, collector_id: str) -> dict:
    collector = await repo.find_user(collector_id)
    if not collector or as_role(collector.get("role")) is not Role.COLLECTOR:
        raise ValidationError.for_field("collector_id", "Invalid collector ID")
    return collector


def _check_can_assign(doc: dict, user: dict) -> None:
    if as_role(user.get("role")) is not Role.ADMINISTRATOR or not can_modify(doc, user["_id"], user.get("role")):
        raise AuthorizationError("Only administrators can assign collection requests")
    if doc["status"] not in ASSIGNABLE:
        raise ValidationError.for_field("status", "Collection request cannot be assigned in its current status")


async def _after_link(notifier: Notifier, before: dict, updated: dict) -> None:
    if before["status"] != updated["status"]:
        await notify_status_change(notifier, updated, before["status"])
    if before.get("assigned_collector") != updated.get("assigned_collector"):
        await notify_assignment(notifier, updated)


async def assign(
    repo,
    notifier: Notifier,
    user: dict,
    collection_id: str,
    collector_id: str,
    scheduled_date: Optional[datetime] = None,
) -> Tuple[dict, dict]:
    """
    Assign a request to a collector and put it on that collector's route for
    the scheduled day (today when no date is given). Returns the updated
    request and the route.
    """
    doc = await load_request(repo, collection_id)
    _check_can_assign(doc, user)
    collector = await load_collector(repo, collector_id)

    set_fields = {"assigned_collector": collector["_id"], "status": Status.ASSIGNED.value}
    if scheduled_date is not None:
        set_fields["scheduled_date"] = ensure_not_past(scheduled_date)
    day = day_start(set_fields.get("scheduled_date"))
    event = status_event(user["_id"], doc["status"], Status.ASSIGNED.value, f"assigned to {collector['_id']}")
    previous = await repo.routes_with_member(collection_id)

    updated, route = await repo.link_request(
        collection_id, doc.get("version", 1), set_fields, event, collector_id=collector["_id"], day=day
    )
    logger.info("Collection request %s assigned to %s on route %s", collection_id, collector["_id"], route["_id"])
    await rollup_left_routes(repo, previous, route["_id"])
    await _after_link(notifier, doc, updated)
    return updated, route


async def assign_to_route(repo, notifier: Notifier, user: dict, route_id: str, collection_id: str) -> Tuple[dict, dict]:
    route = await repo.find_route(route_id)
    if not route:
        raise NotFoundError("Route not found")
    doc = await load_request(repo, collection_id)
    _check_can_assign(doc, user)
    if not route.get("collector_id"):
        raise ValidationError.for_field("route", "Route has no collector")

    set_fields = {"assigned_collector": route["collector_id"], "status": Status.ASSIGNED.value}
    event = status_event(user["_id"], doc["status"], Status.ASSIGNED.value, f"added to route {route_id}")
    previous = await repo.routes_with_member(collection_id)
    updated, linked = await repo.link_request(
        collection_id, doc.get("version", 1), set_fields, event, route_id=route_id
    )
    logger.info("Collection request %s added to route %s", collection_id, route_id)
    await rollup_left_routes(repo, previous, linked["_id"])
    await _after_link(notifier, doc, updated)
    return updated, linked


async def create_route(
    repo,
    notifier: Notifier,
    user: dict,
    collector_id: str,
    route_date: Optional[date] = None,
    collections: Optional[List[str]] = None,
) -> dict:
    if as_role(user.get("role")) is not Role.ADMINISTRATOR:
        raise AuthorizationError("Only administrators can create routes")
    collector = await load_collector(repo, collector_id)
    collections = list(dict.fromkeys(collections or []))

    # validate members up front so a bad id does not leave a half-built route
    for cid in collections:
        doc = await load_request(repo, cid)
        _check_can_assign(doc, user)

    try:
        route = await repo.insert_route(new_route_doc(collector["_id"], day_start(route_date), utcnow()))
    except DuplicateKeyError:
        raise ConflictError("Route already exists for this collector on this date")
    logger.info("Route %s created for %s on %s", route["_id"], collector["_id"], route["date"].date())

    for cid in collections:
        _, route = await assign_to_route(repo, notifier, user, route["_id"], cid)
    return route
