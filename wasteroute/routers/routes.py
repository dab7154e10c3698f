# wasteroute/routers/routes.py
import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wasteroute.core.security import get_current_user
from wasteroute.deps import get_notifier, get_repo
from wasteroute.models.collection import AssignOut, to_out
from wasteroute.models.route import (
    CollectorRouteOut,
    OptimizeOut,
    RouteAssignIn,
    RouteCreate,
    RouteOut,
    RoutePage,
    RouteStatus,
    RouteStatusIn,
    RouteStatusOut,
    route_out,
)
from wasteroute.services import assignment, routes

router = APIRouter(prefix="/routes", tags=["routes"])


@router.get("", response_model=RoutePage)
async def list_routes(
    date: Optional[dt.date] = None,
    status: Optional[RouteStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
    repo=Depends(get_repo),
):
    items, pagination = await routes.list_routes(repo, user, date, status, page, limit)
    return {"routes": [route_out(r) for r in items], "pagination": pagination}


@router.post("", response_model=RouteOut, status_code=201)
async def create_route(
    body: RouteCreate,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    route = await assignment.create_route(repo, notifier, user, body.collector_id, body.date, body.collections)
    return route_out(route)


@router.get("/collector/{collector_id}", response_model=CollectorRouteOut)
async def get_collector_route(
    collector_id: str,
    date: Optional[dt.date] = None,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
):
    route, members = await routes.get_collector_route(repo, user, collector_id, date)
    if route is None:
        return {"route": None, "collections": [], "message": "No route found for this date"}
    return {
        "route": route_out(route),
        "collections": [to_out(m) for m in members],
        "optimized_order": route.get("optimized_order", []),
    }


@router.put("/{route_id}/assign", response_model=AssignOut)
async def assign_to_route(
    route_id: str,
    body: RouteAssignIn,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    doc, route = await assignment.assign_to_route(repo, notifier, user, route_id, body.collection_id)
    return {"collection": to_out(doc), "route": str(route["_id"])}


@router.put("/{route_id}/status", response_model=RouteStatusOut)
async def update_member_status(
    route_id: str,
    body: RouteStatusIn,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    doc, done = await routes.update_member_status(
        repo, notifier, user, route_id, body.collection_id, body.status, body.version
    )
    return {"collection": to_out(doc), "route_completed": done}


@router.put("/{route_id}/optimize", response_model=OptimizeOut)
async def optimize_route(route_id: str, user=Depends(get_current_user), repo=Depends(get_repo)):
    route = await routes.optimize_route(repo, user, route_id)
    return {"route": route_out(route), "optimized_order": route["optimized_order"]}
