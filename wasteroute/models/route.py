# wasteroute/models/route.py
import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from wasteroute.models.collection import CollectionOut, Pagination, Status

RouteStatus = Literal["planned", "active", "completed"]


class RouteCreate(BaseModel):
    collector_id: str
    date: Optional[dt.date] = None
    collections: List[str] = []


class RouteAssignIn(BaseModel):
    collection_id: str


class RouteStatusIn(BaseModel):
    collection_id: str
    status: Status
    version: Optional[int] = Field(None, ge=1)


class RouteOut(BaseModel):
    id: str
    collector_id: Optional[str] = None
    date: datetime
    collections: List[str] = []
    optimized_order: List[int] = []
    status: RouteStatus
    created_at: datetime
    updated_at: datetime


class CollectorRouteOut(BaseModel):
    route: Optional[RouteOut] = None
    collections: List[CollectionOut] = []
    optimized_order: List[int] = []
    message: Optional[str] = None


class RoutePage(BaseModel):
    routes: List[RouteOut]
    pagination: Pagination


class RouteStatusOut(BaseModel):
    collection: CollectionOut
    route_completed: bool


class OptimizeOut(BaseModel):
    route: RouteOut
    optimized_order: List[int]


def route_out(doc: Dict[str, Any]) -> RouteOut:
    return RouteOut(
        id=str(doc["_id"]),
        collector_id=doc.get("collector_id"),
        date=doc["date"],
        collections=[str(c) for c in doc.get("collections", [])],
        optimized_order=list(doc.get("optimized_order", [])),
        status=doc["status"],
        created_at=doc["created_at"],
        updated_at=doc.get("updated_at") or doc["created_at"],
    )
