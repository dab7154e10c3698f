# wasteroute/services/collections.py
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from wasteroute.core.clock import as_utc, day_start, today, utcnow
from wasteroute.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from wasteroute.core.geocode import GeocodeError, geocode_address
from wasteroute.core.policy import can_cancel, can_modify, can_view, visibility_scope
from wasteroute.core.roles import Role, as_role
from wasteroute.core.states import Status, can_transition
from wasteroute.models.collection import CollectionCreate, CollectionUpdate
from wasteroute.services.notifications import Notifier, notify_status_change
from wasteroute.services.rollup import rollup_routes_for

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def status_event(by_user: Optional[str], src: Optional[str], dst: str, note: Optional[str] = None) -> dict:
    return {"at": utcnow(), "by_user": by_user, "from_status": src, "to_status": dst, "note": note}


def ensure_not_past(scheduled: datetime, field: str = "scheduled_date") -> datetime:
    scheduled = as_utc(scheduled)
    if scheduled.date() < today():
        raise ValidationError.for_field(field, "Scheduled date cannot be in the past")
    return scheduled


async def load_request(repo, collection_id: str) -> dict:
    doc = await repo.find_request(collection_id)
    if not doc:
        raise NotFoundError("Collection request not found")
    return doc


async def _with_coordinates(location: Dict[str, Any]) -> Dict[str, Any]:
    try:
        lat, lng = await geocode_address(location["address"])
    except GeocodeError as ex:
        logger.warning("Could not geocode %r: %s", location["address"], ex)
        return location
    return {**location, "coordinates": {"lat": lat, "lng": lng}}


async def create_collection(repo, user: dict, body: CollectionCreate) -> dict:
    role = as_role(user.get("role"))
    if role not in (Role.REQUESTER, Role.ADMINISTRATOR):
        raise AuthorizationError("Only requesters and administrators can create collection requests")

    location = body.pickup_location.model_dump()
    if location.get("coordinates") is None:
        location = await _with_coordinates(location)

    now = utcnow()
    doc = {
        "requester_id": user["_id"],
        "waste_category": body.waste_category,
        "pickup_location": location,
        "status": Status.PENDING.value,
        "notes": body.notes,
        "version": 1,
        "history": [status_event(user["_id"], None, Status.PENDING.value, "created")],
        "created_at": now,
        "updated_at": now,
    }
    created = await repo.insert_request(doc)
    logger.info("Collection request %s created by %s", created["_id"], user["_id"])
    return created


async def get_collection(repo, user: dict, collection_id: str) -> dict:
    doc = await load_request(repo, collection_id)
    if not can_view(doc, user["_id"], user.get("role")):
        raise AuthorizationError("Access denied to this collection request")
    return doc


async def collection_history(repo, user: dict, collection_id: str) -> List[dict]:
    doc = await get_collection(repo, user, collection_id)
    return doc.get("history", [])


async def list_collections(
    repo,
    user: dict,
    status: Optional[str] = None,
    waste_category: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[dict], Dict[str, int]]:
    # role scope first; caller filters can only narrow it
    query = visibility_scope(user.get("role"), user["_id"]).narrow(status=status, waste_category=waste_category)
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    items, total = await repo.list_requests(query, skip=(page - 1) * limit, limit=limit)
    return items, {"current": page, "pages": math.ceil(total / limit), "total": total, "limit": limit}


async def search_by_date_range(
    repo,
    user: dict,
    start_date: date,
    end_date: date,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[dict], Dict[str, int]]:
    """Requests created between two calendar days, both inclusive, within the caller's scope."""
    if end_date < start_date:
        raise ValidationError.for_field("end_date", "End date must not be before start date")
    query = visibility_scope(user.get("role"), user["_id"]).narrow(
        status=status,
        created_from=day_start(start_date),
        created_to=day_start(end_date + timedelta(days=1)),
    )
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    items, total = await repo.list_requests(query, skip=(page - 1) * limit, limit=limit)
    return items, {"current": page, "pages": math.ceil(total / limit), "total": total, "limit": limit}


async def update_collection(repo, notifier: Notifier, user: dict, collection_id: str, body: CollectionUpdate) -> dict:
    """
    Gated update of status, notes and scheduled date.

    Writes are conditional on the version token, so a concurrent edit makes
    this one fail with ConflictError instead of being silently overwritten.
    """
    doc = await load_request(repo, collection_id)
    if not can_modify(doc, user["_id"], user.get("role")):
        raise AuthorizationError("Access denied to update this collection request")
    role = as_role(user.get("role"))

    current_version = doc.get("version", 1)
    if body.version is not None and body.version != current_version:
        raise ConflictError("Version conflict. Refresh and retry.")

    src = doc["status"]
    dst = body.status or src
    set_fields: Dict[str, Any] = {}
    unset: List[str] = []
    event = None

    if dst != src:
        if not can_transition(src, dst, role):
            raise AuthorizationError(f"Transition {src} -> {dst} not allowed for your role")
        if dst == Status.ASSIGNED.value and not doc.get("assigned_collector"):
            raise ValidationError.for_field("status", "Use the assign operation to assign a collection request")
        set_fields["status"] = dst
        event = status_event(user["_id"], src, dst)

    if dst == Status.COMPLETED.value:
        if not doc.get("completed_date"):
            set_fields["completed_date"] = utcnow()
    elif doc.get("completed_date"):
        unset.append("completed_date")

    if "notes" in body.model_fields_set:
        set_fields["notes"] = body.notes

    if body.scheduled_date is not None:
        if role is not Role.ADMINISTRATOR:
            raise AuthorizationError("Only administrators can reschedule collection requests")
        set_fields["scheduled_date"] = ensure_not_past(body.scheduled_date)

    if not set_fields and not unset:
        return doc

    updated = await repo.update_request(collection_id, current_version, set_fields, unset, event)
    if not updated:
        raise ConflictError("Version conflict. Refresh and retry.")

    if dst != src:
        logger.info("Collection request %s: %s -> %s by %s", collection_id, src, dst, user["_id"])
        await notify_status_change(notifier, updated, src)
        if dst in (Status.IN_PROGRESS.value, Status.COMPLETED.value):
            await rollup_routes_for(repo, collection_id)
    return updated


async def cancel_collection(repo, notifier: Notifier, user: dict, collection_id: str) -> dict:
    """Soft delete: the request is kept with status cancelled."""
    doc = await load_request(repo, collection_id)
    if not can_cancel(doc, user["_id"], user.get("role")):
        raise AuthorizationError("Cannot cancel this collection request")
    if doc["status"] == Status.CANCELLED.value:
        return doc
    return await update_collection(
        repo, notifier, user, collection_id,
        CollectionUpdate(status=Status.CANCELLED.value, version=doc.get("version", 1)),
    )
