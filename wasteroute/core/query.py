# wasteroute/core/query.py
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class RequestQuery(BaseModel):
    """
    A predicate over pickup request documents.

    The scope fields (deny_all, requester_id, assigned_collector) are fixed
    when the query is built from the caller's role. Caller filters can only be
    added on top with narrow(), never swapped in for the scope.
    """
    model_config = ConfigDict(frozen=True)

    deny_all: bool = False
    requester_id: Optional[str] = None
    assigned_collector: Optional[str] = None
    status: Optional[str] = None
    waste_category: Optional[str] = None
    # half-open [created_from, created_to)
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None

    def narrow(
        self,
        status: Optional[str] = None,
        waste_category: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> "RequestQuery":
        update: Dict[str, Any] = {}
        if status:
            update["status"] = status
        if waste_category:
            update["waste_category"] = waste_category
        if created_from is not None:
            update["created_from"] = created_from
        if created_to is not None:
            update["created_to"] = created_to
        return self.model_copy(update=update)

    def _scope(self) -> Dict[str, Any]:
        scope: Dict[str, Any] = {}
        if self.requester_id is not None:
            scope["requester_id"] = self.requester_id
        if self.assigned_collector is not None:
            scope["assigned_collector"] = self.assigned_collector
        return scope

    def _extra(self) -> Dict[str, Any]:
        extra: Dict[str, Any] = {}
        if self.status is not None:
            extra["status"] = self.status
        if self.waste_category is not None:
            extra["waste_category"] = self.waste_category
        created: Dict[str, Any] = {}
        if self.created_from is not None:
            created["$gte"] = self.created_from
        if self.created_to is not None:
            created["$lt"] = self.created_to
        if created:
            extra["created_at"] = created
        return extra

    def to_mongo(self) -> Dict[str, Any]:
        if self.deny_all:
            return {"_id": {"$in": []}}
        scope, extra = self._scope(), self._extra()
        if scope and extra:
            return {"$and": [scope, extra]}
        return scope or extra

    def matches(self, doc: Dict[str, Any]) -> bool:
        if self.deny_all:
            return False
        for key, value in self._scope().items():
            if doc.get(key) != value:
                return False
        for key in ("status", "waste_category"):
            value = getattr(self, key)
            if value is not None and doc.get(key) != value:
                return False
        created = doc.get("created_at")
        if self.created_from is not None and (created is None or created < self.created_from):
            return False
        if self.created_to is not None and (created is None or created >= self.created_to):
            return False
        return True
