# wasteroute/models/collection.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

WasteCategory = Literal["organic", "recyclable", "hazardous", "general"]
Status = Literal["pending", "assigned", "in-progress", "completed", "cancelled"]


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90, description="Latitude must be between -90 and 90")
    lng: float = Field(..., ge=-180, le=180, description="Longitude must be between -180 and 180")


class PickupLocation(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    address: str = Field(..., min_length=5, max_length=200)
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = Field(None, max_length=500)


class CollectionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    waste_category: WasteCategory
    pickup_location: PickupLocation
    notes: Optional[str] = Field(None, max_length=1000)


class CollectionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: Optional[Status] = None
    notes: Optional[str] = Field(None, max_length=1000)
    scheduled_date: Optional[datetime] = None
    # version token from the last read; stale tokens are rejected with 409
    version: Optional[int] = Field(None, ge=1)


class AssignIn(BaseModel):
    collector_id: str
    scheduled_date: Optional[datetime] = None


class AdminAssignIn(AssignIn):
    collection_id: str


class StatusEvent(BaseModel):
    at: datetime
    by_user: Optional[str] = None
    from_status: Optional[Status] = None
    to_status: Status
    note: Optional[str] = None


class CollectionOut(BaseModel):
    id: str
    requester_id: Optional[str] = None
    waste_category: WasteCategory
    pickup_location: PickupLocation
    status: Status
    assigned_collector: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    notes: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    current: int
    pages: int
    total: int
    limit: int


class CollectionPage(BaseModel):
    requests: List[CollectionOut]
    pagination: Pagination


class AssignOut(BaseModel):
    collection: CollectionOut
    route: str


def to_out(doc: Dict[str, Any]) -> CollectionOut:
    return CollectionOut(
        id=str(doc["_id"]),
        requester_id=doc.get("requester_id"),
        waste_category=doc["waste_category"],
        pickup_location=doc["pickup_location"],
        status=doc["status"],
        assigned_collector=doc.get("assigned_collector"),
        scheduled_date=doc.get("scheduled_date"),
        completed_date=doc.get("completed_date"),
        notes=doc.get("notes"),
        version=doc.get("version", 1),
        created_at=doc["created_at"],
        updated_at=doc.get("updated_at") or doc["created_at"],
    )
