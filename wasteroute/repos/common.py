# wasteroute/repos/common.py
from datetime import datetime
from typing import List, Optional

from bson import ObjectId

from wasteroute.core.states import RouteStatus


def oid() -> str:
    return str(ObjectId())


def new_route_doc(collector_id: str, day: datetime, now: datetime, collections: Optional[List[str]] = None) -> dict:
    collections = list(collections or [])
    return {
        "_id": oid(),
        "collector_id": collector_id,
        "date": day,
        "collections": collections,
        "optimized_order": list(range(len(collections))),
        "status": RouteStatus.PLANNED.value,
        "created_at": now,
        "updated_at": now,
    }
