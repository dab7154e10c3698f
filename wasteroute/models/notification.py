# wasteroute/models/notification.py
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

NotificationKind = Literal["completion", "status_update", "assignment"]


class NotificationOut(BaseModel):
    id: str
    recipient_id: str
    kind: NotificationKind
    message: str
    collection_id: Optional[str] = None
    status: Literal["sent", "read"] = "sent"
    created_at: datetime
    read_at: Optional[datetime] = None


def notification_out(doc: Dict[str, Any]) -> NotificationOut:
    return NotificationOut(
        id=str(doc["_id"]),
        recipient_id=doc["recipient_id"],
        kind=doc["kind"],
        message=doc["message"],
        collection_id=doc.get("collection_id"),
        status=doc.get("status", "sent"),
        created_at=doc["created_at"],
        read_at=doc.get("read_at"),
    )
