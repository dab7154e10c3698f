# wasteroute/repos/inmemory.py
import asyncio
import copy
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from wasteroute.core.clock import utcnow
from wasteroute.core.errors import ConflictError, NotFoundError
from wasteroute.core.ordering import append_member, remove_member
from wasteroute.core.query import RequestQuery
from wasteroute.core.states import RouteStatus
from wasteroute.repos.common import new_route_doc, oid


def _apply(doc: dict, set_fields: Dict[str, Any], unset_fields: Iterable[str], event: Optional[dict], now: datetime) -> dict:
    doc = copy.deepcopy(doc)
    doc.update(copy.deepcopy(set_fields))
    for key in unset_fields:
        doc.pop(key, None)
    if event:
        doc.setdefault("history", []).append(copy.deepcopy(event))
    doc["version"] = doc.get("version", 1) + 1
    doc["updated_at"] = now
    return doc


class InMemoryRepo:
    """
    Process-local store with the same contract as MongoRepo.

    Every method that reads and writes runs under one lock, which stands in
    for the conditional writes and the unique (collector_id, date) index of
    the Mongo backend.
    """

    def __init__(self):
        self.users: Dict[str, dict] = {}
        self.users_by_email: Dict[str, str] = {}
        self.requests: Dict[str, dict] = {}
        self.routes: Dict[str, dict] = {}
        self.routes_by_day: Dict[Tuple[str, datetime], str] = {}
        self.notifications: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def close(self) -> None:
        return None

    # Users
    async def insert_user(self, doc: dict) -> dict:
        async with self._lock:
            email = doc["email"].lower()
            if email in self.users_by_email:
                raise DuplicateKeyError("email already exists", code=11000)
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", oid())
            doc["email"] = email
            self.users[doc["_id"]] = doc
            self.users_by_email[email] = doc["_id"]
            return copy.deepcopy(doc)

    async def find_user(self, user_id: str) -> Optional[dict]:
        doc = self.users.get(user_id)
        return copy.deepcopy(doc) if doc else None

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        uid = self.users_by_email.get((email or "").lower())
        return copy.deepcopy(self.users[uid]) if uid else None

    async def list_users(self, role: Optional[str] = None) -> List[dict]:
        vals = sorted(self.users.values(), key=lambda u: u["email"])
        return [copy.deepcopy(u) for u in vals if role is None or u.get("role") == role]

    async def set_user_role(self, user_id: str, role: str) -> Optional[dict]:
        async with self._lock:
            doc = self.users.get(user_id)
            if not doc:
                return None
            doc["role"] = role
            return copy.deepcopy(doc)

    async def delete_user(self, user_id: str, marker: str) -> int:
        """Remove a user, keeping their requests with the references unset."""
        async with self._lock:
            user = self.users.pop(user_id, None)
            if not user:
                return 0
            self.users_by_email.pop(user["email"], None)
            now = utcnow()
            touched = 0
            for rid, req in list(self.requests.items()):
                set_fields: Dict[str, Any] = {}
                unset: List[str] = []
                if req.get("requester_id") == user_id:
                    unset.append("requester_id")
                    old = req.get("notes")
                    set_fields["notes"] = f"{marker} - {old}" if old else marker
                if req.get("assigned_collector") == user_id:
                    unset.append("assigned_collector")
                if unset:
                    self.requests[rid] = _apply(req, set_fields, unset, None, now)
                    touched += 1
            return touched

    # Pickup requests
    async def insert_request(self, doc: dict) -> dict:
        async with self._lock:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", oid())
            self.requests[doc["_id"]] = doc
            return copy.deepcopy(doc)

    async def find_request(self, request_id: str) -> Optional[dict]:
        doc = self.requests.get(request_id)
        return copy.deepcopy(doc) if doc else None

    async def find_requests(self, ids: List[str]) -> List[dict]:
        return [copy.deepcopy(self.requests[i]) for i in ids if i in self.requests]

    async def list_requests(self, query: RequestQuery, skip: int = 0, limit: int = 10) -> Tuple[List[dict], int]:
        hits = [r for r in self.requests.values() if query.matches(r)]
        hits.sort(key=lambda r: r["created_at"], reverse=True)
        return [copy.deepcopy(r) for r in hits[skip:skip + limit]], len(hits)

    async def update_request(
        self,
        request_id: str,
        expected_version: int,
        set_fields: Dict[str, Any],
        unset_fields: Iterable[str] = (),
        event: Optional[dict] = None,
    ) -> Optional[dict]:
        """Write only if the stored version still equals expected_version."""
        async with self._lock:
            doc = self.requests.get(request_id)
            if not doc or doc.get("version", 1) != expected_version:
                return None
            doc = _apply(doc, set_fields, unset_fields, event, utcnow())
            self.requests[request_id] = doc
            return copy.deepcopy(doc)

    # Routes
    async def insert_route(self, doc: dict) -> dict:
        async with self._lock:
            key = (doc["collector_id"], doc["date"])
            if key in self.routes_by_day:
                raise DuplicateKeyError("route exists for collector and date", code=11000)
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", oid())
            self.routes[doc["_id"]] = doc
            self.routes_by_day[key] = doc["_id"]
            return copy.deepcopy(doc)

    async def find_route(self, route_id: str) -> Optional[dict]:
        doc = self.routes.get(route_id)
        return copy.deepcopy(doc) if doc else None

    async def find_route_for_day(self, collector_id: str, day: datetime) -> Optional[dict]:
        rid = self.routes_by_day.get((collector_id, day))
        return copy.deepcopy(self.routes[rid]) if rid else None

    async def list_routes(
        self, day: Optional[datetime] = None, status: Optional[str] = None, skip: int = 0, limit: int = 10
    ) -> Tuple[List[dict], int]:
        hits = [
            r for r in self.routes.values()
            if (day is None or r["date"] == day) and (status is None or r["status"] == status)
        ]
        hits.sort(key=lambda r: r["date"], reverse=True)
        return [copy.deepcopy(r) for r in hits[skip:skip + limit]], len(hits)

    async def routes_with_member(self, request_id: str) -> List[dict]:
        return [copy.deepcopy(r) for r in self.routes.values() if request_id in r.get("collections", [])]

    async def set_route_order(self, route_id: str, members: List[str], order: List[int]) -> Optional[dict]:
        """Store an order computed over `members`; refused if membership moved on."""
        async with self._lock:
            doc = self.routes.get(route_id)
            if not doc or doc.get("collections", []) != members:
                return None
            doc["optimized_order"] = list(order)
            doc["updated_at"] = utcnow()
            return copy.deepcopy(doc)

    async def advance_route_status(self, route_id: str, status: str, from_statuses: List[str]) -> Optional[dict]:
        async with self._lock:
            doc = self.routes.get(route_id)
            if not doc or doc["status"] not in from_statuses:
                return None
            doc["status"] = status
            doc["updated_at"] = utcnow()
            return copy.deepcopy(doc)

    async def link_request(
        self,
        request_id: str,
        expected_version: int,
        set_fields: Dict[str, Any],
        event: Optional[dict] = None,
        *,
        route_id: Optional[str] = None,
        collector_id: Optional[str] = None,
        day: Optional[datetime] = None,
    ) -> Tuple[dict, dict]:
        """
        Write the request and its route membership as one unit.

        The target route is `route_id`, or the (collector_id, day) route which
        is created when missing. The request leaves any other route it was in.
        Nothing is written unless every step succeeds.
        """
        async with self._lock:
            now = utcnow()
            if route_id is not None:
                route = self.routes.get(route_id)
                if not route:
                    raise NotFoundError("Route not found")
            else:
                rid = self.routes_by_day.get((collector_id, day))
                route = self.routes[rid] if rid else new_route_doc(collector_id, day, now)
            created = route["_id"] not in self.routes

            if route["status"] == RouteStatus.COMPLETED.value:
                raise ConflictError("Route is already completed")

            current = self.requests.get(request_id)
            if not current:
                raise NotFoundError("Collection request not found")
            if current.get("version", 1) != expected_version:
                raise ConflictError("Version conflict. Refresh and retry.")

            staged: Dict[str, dict] = {}
            for other in self.routes.values():
                if other["_id"] != route["_id"] and request_id in other.get("collections", []):
                    cols, order = remove_member(other["collections"], other["optimized_order"], request_id)
                    staged[other["_id"]] = {**other, "collections": cols, "optimized_order": order, "updated_at": now}
            cols, order = append_member(route["collections"], route["optimized_order"], request_id)
            staged[route["_id"]] = {**route, "collections": cols, "optimized_order": order, "updated_at": now}

            updated = _apply(current, set_fields, (), event, now)
            self.requests[request_id] = updated
            self.routes.update(staged)
            if created:
                self.routes_by_day[(route["collector_id"], route["date"])] = route["_id"]
            return copy.deepcopy(updated), copy.deepcopy(staged[route["_id"]])

    # Notifications outbox
    async def insert_notification(self, doc: dict) -> dict:
        async with self._lock:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", oid())
            self.notifications[doc["_id"]] = doc
            return copy.deepcopy(doc)

    async def list_notifications(self, recipient_id: str) -> List[dict]:
        hits = [n for n in self.notifications.values() if n["recipient_id"] == recipient_id]
        hits.sort(key=lambda n: n["created_at"], reverse=True)
        return [copy.deepcopy(n) for n in hits]

    async def mark_notification_read(self, notification_id: str, recipient_id: str) -> Optional[dict]:
        async with self._lock:
            doc = self.notifications.get(notification_id)
            if not doc or doc["recipient_id"] != recipient_id:
                return None
            doc["status"] = "read"
            doc["read_at"] = utcnow()
            return copy.deepcopy(doc)
