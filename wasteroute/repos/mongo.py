# wasteroute/repos/mongo.py
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from wasteroute.core.clock import utcnow
from wasteroute.core.errors import ConflictError, InternalError, NotFoundError
from wasteroute.core.ordering import remove_member
from wasteroute.core.query import RequestQuery
from wasteroute.core.states import RouteStatus
from wasteroute.repos.common import new_route_doc, oid

logger = logging.getLogger(__name__)


def _update_doc(set_fields: Dict[str, Any], unset_fields: Iterable[str], event: Optional[dict], now: datetime) -> dict:
    upd: Dict[str, Any] = {
        "$set": {**set_fields, "updated_at": now},
        "$inc": {"version": 1},
    }
    unset_fields = [k for k in unset_fields if k not in set_fields]
    if unset_fields:
        upd["$unset"] = {k: "" for k in unset_fields}
    if event:
        upd["$push"] = {"history": event}
    return upd


class MongoRepo:
    """
    Motor-backed store.

    Collections: users, pickup_requests, routes, notifications. The unique
    (collector_id, date) index on routes is what makes route get-or-create
    safe across processes.
    """

    def __init__(self, client: AsyncIOMotorClient, db_name: str, use_transactions: bool = True):
        self.client = client
        self.db: AsyncIOMotorDatabase = client[db_name]
        self.use_transactions = use_transactions

    @property
    def users(self):
        return self.db.users

    @property
    def requests(self):
        return self.db.pickup_requests

    @property
    def routes(self):
        return self.db.routes

    @property
    def notifications(self):
        return self.db.notifications

    async def ensure_indexes(self) -> None:
        async def ensure_index(col, keys, name: str, **kwargs):
            existing = [ix["name"] async for ix in col.list_indexes()]
            if name in existing:
                return
            await col.create_index(keys, name=name, **kwargs)

        await ensure_index(self.users, [("email", ASCENDING)], "email_1", unique=True)
        await ensure_index(self.users, [("role", ASCENDING)], "role_1")
        await ensure_index(self.requests, [("requester_id", ASCENDING)], "requester_id_1")
        await ensure_index(self.requests, [("assigned_collector", ASCENDING)], "assigned_collector_1")
        await ensure_index(self.requests, [("status", ASCENDING)], "status_1")
        await ensure_index(self.requests, [("created_at", DESCENDING)], "created_at_-1")
        await ensure_index(
            self.requests, [("status", ASCENDING), ("assigned_collector", ASCENDING)], "status_1_assigned_collector_1"
        )
        await ensure_index(
            self.routes, [("collector_id", ASCENDING), ("date", ASCENDING)], "collector_id_1_date_1", unique=True
        )
        await ensure_index(self.routes, [("collections", ASCENDING)], "collections_1")
        await ensure_index(
            self.notifications, [("recipient_id", ASCENDING), ("created_at", DESCENDING)], "recipient_id_1_created_at_-1"
        )

    async def close(self) -> None:
        self.client.close()

    # Users
    async def insert_user(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        doc["email"] = doc["email"].lower()
        await self.users.insert_one(doc)
        return doc

    async def find_user(self, user_id: str) -> Optional[dict]:
        return await self.users.find_one({"_id": user_id})

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        return await self.users.find_one({"email": (email or "").lower()})

    async def list_users(self, role: Optional[str] = None) -> List[dict]:
        query = {"role": role} if role else {}
        return [u async for u in self.users.find(query).sort("email", 1)]

    async def set_user_role(self, user_id: str, role: str) -> Optional[dict]:
        return await self.users.find_one_and_update(
            {"_id": user_id}, {"$set": {"role": role}}, return_document=ReturnDocument.AFTER
        )

    async def delete_user(self, user_id: str, marker: str) -> int:
        user = await self.users.find_one_and_delete({"_id": user_id})
        if not user:
            return 0
        now = utcnow()
        touched = 0
        async for req in self.requests.find({"requester_id": user_id}):
            old = req.get("notes")
            await self.requests.update_one(
                {"_id": req["_id"]},
                {
                    "$unset": {"requester_id": ""},
                    "$set": {"notes": f"{marker} - {old}" if old else marker, "updated_at": now},
                    "$inc": {"version": 1},
                },
            )
            touched += 1
        res = await self.requests.update_many(
            {"assigned_collector": user_id},
            {"$unset": {"assigned_collector": ""}, "$set": {"updated_at": now}, "$inc": {"version": 1}},
        )
        return touched + res.modified_count

    # Pickup requests
    async def insert_request(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        await self.requests.insert_one(doc)
        return doc

    async def find_request(self, request_id: str, session=None) -> Optional[dict]:
        return await self.requests.find_one({"_id": request_id}, session=session)

    async def find_requests(self, ids: List[str]) -> List[dict]:
        return [r async for r in self.requests.find({"_id": {"$in": list(ids)}})]

    async def list_requests(self, query: RequestQuery, skip: int = 0, limit: int = 10) -> Tuple[List[dict], int]:
        filt = query.to_mongo()
        cur = self.requests.find(filt).sort("created_at", -1).skip(skip).limit(limit)
        items = [r async for r in cur]
        total = await self.requests.count_documents(filt)
        return items, total

    async def update_request(
        self,
        request_id: str,
        expected_version: int,
        set_fields: Dict[str, Any],
        unset_fields: Iterable[str] = (),
        event: Optional[dict] = None,
        session=None,
    ) -> Optional[dict]:
        return await self.requests.find_one_and_update(
            {"_id": request_id, "version": expected_version},
            _update_doc(set_fields, unset_fields, event, utcnow()),
            return_document=ReturnDocument.AFTER,
            session=session,
        )

    # Routes
    async def insert_route(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        await self.routes.insert_one(doc)
        return doc

    async def find_route(self, route_id: str, session=None) -> Optional[dict]:
        return await self.routes.find_one({"_id": route_id}, session=session)

    async def find_route_for_day(self, collector_id: str, day: datetime) -> Optional[dict]:
        return await self.routes.find_one({"collector_id": collector_id, "date": day})

    async def list_routes(
        self, day: Optional[datetime] = None, status: Optional[str] = None, skip: int = 0, limit: int = 10
    ) -> Tuple[List[dict], int]:
        filt: Dict[str, Any] = {}
        if day is not None:
            filt["date"] = day
        if status:
            filt["status"] = status
        cur = self.routes.find(filt).sort("date", -1).skip(skip).limit(limit)
        items = [r async for r in cur]
        total = await self.routes.count_documents(filt)
        return items, total

    async def routes_with_member(self, request_id: str, session=None) -> List[dict]:
        return [r async for r in self.routes.find({"collections": request_id}, session=session)]

    async def set_route_order(self, route_id: str, members: List[str], order: List[int]) -> Optional[dict]:
        return await self.routes.find_one_and_update(
            {"_id": route_id, "collections": members},
            {"$set": {"optimized_order": list(order), "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    async def advance_route_status(self, route_id: str, status: str, from_statuses: List[str]) -> Optional[dict]:
        return await self.routes.find_one_and_update(
            {"_id": route_id, "status": {"$in": list(from_statuses)}},
            {"$set": {"status": status, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    async def _get_or_create_route(self, collector_id: str, day: datetime) -> dict:
        now = utcnow()
        doc = new_route_doc(collector_id, day, now)
        doc.pop("collector_id")
        doc.pop("date")
        try:
            return await self.routes.find_one_and_update(
                {"collector_id": collector_id, "date": day},
                {"$setOnInsert": doc},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # a concurrent upsert won; its document is the one to reuse
            return await self.routes.find_one({"collector_id": collector_id, "date": day})

    async def _append(self, route_id: str, request_id: str, session=None, allow_completed: bool = False) -> bool:
        """Append a member; optimized_order gains its index in the same write."""
        filt: Dict[str, Any] = {"_id": route_id, "collections": {"$ne": request_id}}
        if not allow_completed:
            filt["status"] = {"$ne": RouteStatus.COMPLETED.value}
        res = await self.routes.update_one(
            filt,
            [{"$set": {
                "optimized_order": {"$concatArrays": ["$optimized_order", [{"$size": "$collections"}]]},
                "collections": {"$concatArrays": ["$collections", [request_id]]},
                "updated_at": utcnow(),
            }}],
            session=session,
        )
        return res.modified_count == 1

    async def _remove(self, route: dict, request_id: str, session=None, attempts: int = 3) -> bool:
        """Drop a member and renumber optimized_order; retried when the route moved underneath."""
        for _ in range(attempts):
            if not route or request_id not in route.get("collections", []):
                return False
            cols, order = remove_member(route["collections"], route.get("optimized_order", []), request_id)
            res = await self.routes.update_one(
                {"_id": route["_id"], "collections": route["collections"]},
                {"$set": {"collections": cols, "optimized_order": order, "updated_at": utcnow()}},
                session=session,
            )
            if res.matched_count:
                return True
            route = await self.routes.find_one({"_id": route["_id"]}, session=session)
        raise ConflictError("Route changed concurrently. Refresh and retry.")

    async def _attach(self, route_id: str, request_id: str, session=None, undo: Optional[list] = None) -> dict:
        # add before detaching, so a failed add leaves every old route untouched
        added = await self._append(route_id, request_id, session=session)
        route = await self.routes.find_one({"_id": route_id}, session=session)
        if not route or request_id not in route.get("collections", []):
            raise ConflictError("Route is already completed")
        if added and undo is not None:
            undo.append(("added", route_id))

        async for other in self.routes.find({"collections": request_id, "_id": {"$ne": route_id}}, session=session):
            if await self._remove(other, request_id, session=session) and undo is not None:
                undo.append(("removed", other["_id"]))
        return await self.routes.find_one({"_id": route_id}, session=session)

    async def _undo_attach(self, request_id: str, undo: list) -> None:
        for step, route_id in reversed(undo):
            if step == "added":
                await self._remove(await self.routes.find_one({"_id": route_id}), request_id)
            else:
                await self._append(route_id, request_id, allow_completed=True)

    async def _link(self, request_id, expected_version, set_fields, event, route, session=None):
        updated = await self.update_request(request_id, expected_version, set_fields, (), event, session=session)
        if not updated:
            raise ConflictError("Version conflict. Refresh and retry.")
        linked = await self._attach(route["_id"], request_id, session=session)
        return updated, linked

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

        With transactions enabled both writes commit together. Without them
        a failed route write is compensated: route membership changes are
        undone in reverse and the request write is rolled back.
        """
        if route_id is not None:
            route = await self.find_route(route_id)
            if not route:
                raise NotFoundError("Route not found")
        else:
            # upsert outside the transaction: a DuplicateKeyError would abort it
            route = await self._get_or_create_route(collector_id, day)
        if route["status"] == RouteStatus.COMPLETED.value:
            raise ConflictError("Route is already completed")

        if self.use_transactions:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    return await self._link(request_id, expected_version, set_fields, event, route, session=session)

        before = await self.find_request(request_id)
        if not before:
            raise NotFoundError("Collection request not found")
        updated = await self.update_request(request_id, expected_version, set_fields, (), event)
        if not updated:
            raise ConflictError("Version conflict. Refresh and retry.")
        undo: list = []
        try:
            linked = await self._attach(route["_id"], request_id, undo=undo)
        except Exception as ex:
            logger.error("Route write failed for request %s, rolling back", request_id, exc_info=True)
            try:
                await self._undo_attach(request_id, undo)
            except Exception as undo_ex:
                raise InternalError("Assignment partially applied; route membership not restored") from undo_ex
            restore = {k: before[k] for k in set_fields if k in before}
            unset = [k for k in set_fields if k not in before]
            upd = _update_doc(restore, unset, None, utcnow())
            if event:
                upd["$pop"] = {"history": 1}
            res = await self.requests.update_one({"_id": request_id, "version": updated["version"]}, upd)
            if not res.matched_count:
                raise InternalError("Assignment partially applied; request changed before rollback") from ex
            raise
        return updated, linked

    # Notifications outbox
    async def insert_notification(self, doc: dict) -> dict:
        doc = dict(doc)
        doc.setdefault("_id", oid())
        await self.notifications.insert_one(doc)
        return doc

    async def list_notifications(self, recipient_id: str) -> List[dict]:
        cur = self.notifications.find({"recipient_id": recipient_id}).sort("created_at", -1)
        return [n async for n in cur]

    async def mark_notification_read(self, notification_id: str, recipient_id: str) -> Optional[dict]:
        return await self.notifications.find_one_and_update(
            {"_id": notification_id, "recipient_id": recipient_id},
            {"$set": {"status": "read", "read_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
