# wasteroute/services/routes.py
import logging
import math
from datetime import date
from typing import Dict, List, Optional, Tuple

from wasteroute.core.clock import day_start
from wasteroute.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from wasteroute.core.ordering import coords_of, nearest_neighbor_order, ordered_members
from wasteroute.core.roles import Role, as_role
from wasteroute.core.states import RouteStatus
from wasteroute.models.collection import CollectionUpdate
from wasteroute.services.collections import MAX_PAGE_SIZE, update_collection
from wasteroute.services.notifications import Notifier

logger = logging.getLogger(__name__)


def _require_admin(user: dict, action: str) -> None:
    if as_role(user.get("role")) is not Role.ADMINISTRATOR:
        raise AuthorizationError(f"Only administrators can {action}")


async def load_route(repo, route_id: str) -> dict:
    route = await repo.find_route(route_id)
    if not route:
        raise NotFoundError("Route not found")
    return route


async def get_collector_route(
    repo, user: dict, collector_id: str, route_date: Optional[date] = None
) -> Tuple[Optional[dict], List[dict]]:
    """The collector's route for one day, with members in visiting order."""
    role = as_role(user.get("role"))
    if role is not Role.ADMINISTRATOR and not (role is Role.COLLECTOR and user["_id"] == collector_id):
        raise AuthorizationError("Access denied to this collector's route")
    collector = await repo.find_user(collector_id)
    if not collector or as_role(collector.get("role")) is not Role.COLLECTOR:
        raise NotFoundError("Collector not found")

    route = await repo.find_route_for_day(collector_id, day_start(route_date))
    if not route:
        return None, []
    docs = await repo.find_requests(route.get("collections", []))
    return route, ordered_members(route, {d["_id"]: d for d in docs})


async def list_routes(
    repo,
    user: dict,
    route_date: Optional[date] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[dict], Dict[str, int]]:
    _require_admin(user, "list routes")
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    day = day_start(route_date) if route_date else None
    items, total = await repo.list_routes(day=day, status=status, skip=(page - 1) * limit, limit=limit)
    return items, {"current": page, "pages": math.ceil(total / limit), "total": total, "limit": limit}


async def optimize_route(repo, user: dict, route_id: str) -> dict:
    _require_admin(user, "optimize routes")
    route = await load_route(repo, route_id)
    members = list(route.get("collections", []))
    docs = {d["_id"]: d for d in await repo.find_requests(members)}
    order = nearest_neighbor_order([coords_of(docs.get(cid, {})) for cid in members])

    saved = await repo.set_route_order(route_id, members, order)
    if not saved:
        raise ConflictError("Route changed while optimizing. Retry.")
    logger.info("Route %s optimized: %s", route_id, order)
    return saved


async def update_member_status(
    repo,
    notifier: Notifier,
    user: dict,
    route_id: str,
    collection_id: str,
    status: str,
    version: Optional[int] = None,
) -> Tuple[dict, bool]:
    """Status update for one stop on a route; returns the request and whether the route is done."""
    route = await load_route(repo, route_id)
    role = as_role(user.get("role"))
    if role is not Role.ADMINISTRATOR and not (role is Role.COLLECTOR and route.get("collector_id") == user["_id"]):
        raise AuthorizationError("Access denied to update this route")
    if collection_id not in route.get("collections", []):
        raise ValidationError.for_field("collection_id", "Collection is not part of this route")

    updated = await update_collection(
        repo, notifier, user, collection_id, CollectionUpdate(status=status, version=version)
    )
    route = await load_route(repo, route_id)
    return updated, route["status"] == RouteStatus.COMPLETED.value
