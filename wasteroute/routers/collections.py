# wasteroute/routers/collections.py
import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from wasteroute.core.security import get_current_user
from wasteroute.deps import get_notifier, get_repo
from wasteroute.models.collection import (
    AssignIn,
    AssignOut,
    CollectionCreate,
    CollectionOut,
    CollectionPage,
    CollectionUpdate,
    StatusEvent,
    Status,
    WasteCategory,
    to_out,
)
from wasteroute.services import assignment, collections

router = APIRouter(prefix="/collections", tags=["collections"])


@router.post("", response_model=CollectionOut, status_code=201)
async def create_collection(body: CollectionCreate, user=Depends(get_current_user), repo=Depends(get_repo)):
    return to_out(await collections.create_collection(repo, user, body))


@router.get("", response_model=CollectionPage)
async def list_collections(
    status: Optional[Status] = None,
    waste_category: Optional[WasteCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
    repo=Depends(get_repo),
):
    items, pagination = await collections.list_collections(repo, user, status, waste_category, page, limit)
    return {"requests": [to_out(d) for d in items], "pagination": pagination}


@router.get("/search/date-range", response_model=CollectionPage)
async def search_by_date_range(
    start_date: dt.date,
    end_date: dt.date,
    status: Optional[Status] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
    repo=Depends(get_repo),
):
    items, pagination = await collections.search_by_date_range(
        repo, user, start_date, end_date, status, page, limit
    )
    return {"requests": [to_out(d) for d in items], "pagination": pagination}


@router.get("/{collection_id}", response_model=CollectionOut)
async def get_collection(collection_id: str, user=Depends(get_current_user), repo=Depends(get_repo)):
    return to_out(await collections.get_collection(repo, user, collection_id))


@router.get("/{collection_id}/history", response_model=List[StatusEvent])
async def collection_history(collection_id: str, user=Depends(get_current_user), repo=Depends(get_repo)):
    return await collections.collection_history(repo, user, collection_id)


@router.put("/{collection_id}", response_model=CollectionOut)
async def update_collection(
    collection_id: str,
    body: CollectionUpdate,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    return to_out(await collections.update_collection(repo, notifier, user, collection_id, body))


@router.put("/{collection_id}/assign", response_model=AssignOut)
async def assign_collection(
    collection_id: str,
    body: AssignIn,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    doc, route = await assignment.assign(repo, notifier, user, collection_id, body.collector_id, body.scheduled_date)
    return {"collection": to_out(doc), "route": str(route["_id"])}


@router.delete("/{collection_id}", response_model=CollectionOut)
async def cancel_collection(
    collection_id: str,
    user=Depends(get_current_user),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    return to_out(await collections.cancel_collection(repo, notifier, user, collection_id))
