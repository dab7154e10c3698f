# wasteroute/services/notifications.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from wasteroute.core.clock import utcnow

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Side channel for telling users about their pickups."""

    @abstractmethod
    async def send(self, recipient_id: str, kind: str, message: str, collection_id: Optional[str] = None) -> dict:
        ...

    @abstractmethod
    async def list_for(self, recipient_id: str) -> List[dict]:
        ...

    @abstractmethod
    async def mark_read(self, notification_id: str, recipient_id: str) -> Optional[dict]:
        ...


class OutboxNotifier(Notifier):
    """Stores notifications in the repository's notifications collection."""

    def __init__(self, repo):
        self.repo = repo

    async def send(self, recipient_id, kind, message, collection_id=None):
        doc = {
            "recipient_id": recipient_id,
            "kind": kind,
            "message": message,
            "collection_id": collection_id,
            "status": "sent",
            "created_at": utcnow(),
        }
        saved = await self.repo.insert_notification(doc)
        logger.info("Notification %s queued for %s: %s", kind, recipient_id, message)
        return saved

    async def list_for(self, recipient_id):
        return await self.repo.list_notifications(recipient_id)

    async def mark_read(self, notification_id, recipient_id):
        return await self.repo.mark_notification_read(notification_id, recipient_id)


async def notify(notifier: Notifier, recipient_id: Optional[str], kind: str, message: str,
                 collection_id: Optional[str] = None) -> None:
    """Best-effort send: failures are logged and never reach the caller."""
    if not recipient_id:
        return
    try:
        await notifier.send(recipient_id, kind, message, collection_id)
    except Exception:
        logger.warning("Failed to send %s notification to %s", kind, recipient_id, exc_info=True)


def _where(doc: Dict[str, Any]) -> str:
    return (doc.get("pickup_location") or {}).get("address", "your address")


async def notify_status_change(notifier: Notifier, doc: Dict[str, Any], old_status: str) -> None:
    new_status = doc["status"]
    if new_status == "completed":
        kind = "completion"
        message = f"Your waste collection request for {doc['waste_category']} waste at {_where(doc)} has been completed."
    else:
        kind = "status_update"
        message = f'Your collection request status has been updated from "{old_status}" to "{new_status}".'
    await notify(notifier, doc.get("requester_id"), kind, message, str(doc["_id"]))


async def notify_assignment(notifier: Notifier, doc: Dict[str, Any]) -> None:
    message = f"You have been assigned a new collection: {doc['waste_category']} waste at {_where(doc)}."
    await notify(notifier, doc.get("assigned_collector"), "assignment", message, str(doc["_id"]))
