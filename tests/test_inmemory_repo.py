# tests/test_inmemory_repo.py
import anyio
import pytest

from wasteroute.core.clock import day_start, utcnow
from wasteroute.core.errors import ConflictError, NotFoundError
from wasteroute.core.ordering import is_permutation
from wasteroute.core.query import RequestQuery

from conftest import future_day

pytestmark = pytest.mark.anyio


async def _request(repo, requester="R", status="pending"):
    now = utcnow()
    return await repo.insert_request({
        "requester_id": requester,
        "waste_category": "general",
        "pickup_location": {"address": "1 Main Street"},
        "status": status,
        "version": 1,
        "history": [],
        "created_at": now,
        "updated_at": now,
    })


def _assigned(collector):
    return {"assigned_collector": collector, "status": "assigned"}


async def test_concurrent_assignment_creates_one_route(repo):
    day = day_start(future_day())
    docs = [await _request(repo) for _ in range(8)]

    async def link(doc):
        await repo.link_request(doc["_id"], 1, _assigned("X"), collector_id="X", day=day)

    async with anyio.create_task_group() as tg:
        for doc in docs:
            tg.start_soon(link, doc)

    routes, total = await repo.list_routes(day=day)
    assert total == 1
    route = routes[0]
    assert sorted(route["collections"]) == sorted(d["_id"] for d in docs)
    assert is_permutation(route["optimized_order"], len(docs))


async def test_link_is_idempotent_for_same_route(repo):
    day = day_start(future_day())
    doc = await _request(repo)
    updated, route = await repo.link_request(doc["_id"], 1, _assigned("X"), collector_id="X", day=day)
    _, again = await repo.link_request(doc["_id"], updated["version"], _assigned("X"), collector_id="X", day=day)
    assert again["_id"] == route["_id"]
    assert again["collections"] == [doc["_id"]]
    assert again["optimized_order"] == [0]


async def test_stale_version_writes_nothing(repo):
    doc = await _request(repo)
    assert await repo.update_request(doc["_id"], 1, {"notes": "first"})
    assert await repo.update_request(doc["_id"], 1, {"notes": "second"}) is None

    with pytest.raises(ConflictError):
        await repo.link_request(doc["_id"], 1, _assigned("X"), collector_id="X", day=day_start(future_day()))

    stored = await repo.find_request(doc["_id"])
    assert stored["notes"] == "first"
    assert stored["version"] == 2
    assert stored["status"] == "pending"
    assert repo.routes == {}


async def test_reassignment_moves_request_between_routes(repo):
    day = day_start(future_day())
    a, b = await _request(repo), await _request(repo)
    _, first = await repo.link_request(a["_id"], 1, _assigned("X"), collector_id="X", day=day)
    await repo.link_request(b["_id"], 1, _assigned("X"), collector_id="X", day=day)

    await repo.link_request(a["_id"], 2, _assigned("Y"), collector_id="Y", day=day)

    old = await repo.find_route(first["_id"])
    assert old["collections"] == [b["_id"]]
    assert old["optimized_order"] == [0]
    new = await repo.find_route_for_day("Y", day)
    assert new["collections"] == [a["_id"]]


async def test_completed_route_rejects_members(repo):
    day = day_start(future_day())
    doc, other = await _request(repo), await _request(repo)
    _, route = await repo.link_request(doc["_id"], 1, _assigned("X"), collector_id="X", day=day)
    await repo.advance_route_status(route["_id"], "completed", ["planned", "active"])

    with pytest.raises(ConflictError):
        await repo.link_request(other["_id"], 1, _assigned("X"), route_id=route["_id"])
    assert (await repo.find_request(other["_id"]))["status"] == "pending"


async def test_link_unknown_route(repo):
    doc = await _request(repo)
    with pytest.raises(NotFoundError):
        await repo.link_request(doc["_id"], 1, _assigned("X"), route_id="nope")


async def test_set_route_order_refuses_changed_membership(repo):
    day = day_start(future_day())
    a, b = await _request(repo), await _request(repo)
    _, route = await repo.link_request(a["_id"], 1, _assigned("X"), collector_id="X", day=day)
    members = list(route["collections"])
    await repo.link_request(b["_id"], 1, _assigned("X"), collector_id="X", day=day)
    assert await repo.set_route_order(route["_id"], members, [0]) is None


async def test_list_requests_newest_first_with_total(repo):
    for _ in range(3):
        await _request(repo, requester="R")
    await _request(repo, requester="S")
    items, total = await repo.list_requests(RequestQuery(requester_id="R"), skip=0, limit=2)
    assert total == 3
    assert len(items) == 2
    assert items[0]["created_at"] >= items[1]["created_at"]


async def test_delete_user_keeps_requests(repo):
    user = await repo.insert_user({"email": "Gone@Example.com", "name": "Gone", "role": "requester"})
    owned = await repo.insert_request({
        "requester_id": user["_id"], "waste_category": "organic",
        "pickup_location": {"address": "9 Elm Road"}, "status": "pending", "notes": "gate code 12",
        "version": 1, "created_at": utcnow(), "updated_at": utcnow(),
    })
    assert await repo.delete_user(user["_id"], "Gone (deleted user)") == 1

    stored = await repo.find_request(owned["_id"])
    assert "requester_id" not in stored
    assert stored["notes"] == "Gone (deleted user) - gate code 12"
    assert await repo.find_user_by_email("gone@example.com") is None
