# wasteroute/services/rollup.py
import logging
from typing import Any, Dict, Optional

from wasteroute.core.states import RouteStatus, Status

logger = logging.getLogger(__name__)

_STARTED = {Status.IN_PROGRESS.value, Status.COMPLETED.value}


async def rollup_route(repo, route: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Recompute a route's status from its members.

    completed once every member is completed, active once any member has
    started. The status only moves forward; a completed route stays completed.
    """
    if route["status"] == RouteStatus.COMPLETED.value:
        return route
    collections = route.get("collections", [])
    members = await repo.find_requests(collections)
    statuses = [m["status"] for m in members]

    if collections and len(members) == len(collections) and all(s == Status.COMPLETED.value for s in statuses):
        updated = await repo.advance_route_status(
            route["_id"], RouteStatus.COMPLETED.value, [RouteStatus.PLANNED.value, RouteStatus.ACTIVE.value]
        )
        if updated:
            logger.info("Route %s completed (%d pickups)", route["_id"], len(collections))
        return updated or await repo.find_route(route["_id"])

    if route["status"] == RouteStatus.PLANNED.value and any(s in _STARTED for s in statuses):
        updated = await repo.advance_route_status(route["_id"], RouteStatus.ACTIVE.value, [RouteStatus.PLANNED.value])
        return updated or await repo.find_route(route["_id"])
    return route


async def rollup_routes_for(repo, request_id: str) -> None:
    for route in await repo.routes_with_member(request_id):
        await rollup_route(repo, route)


async def rollup_left_routes(repo, previous, target_id: str) -> None:
    """Re-roll routes a request was just moved off; what remains may now be all done."""
    for old in previous:
        if old["_id"] == target_id:
            continue
        route = await repo.find_route(old["_id"])
        if route:
            await rollup_route(repo, route)
