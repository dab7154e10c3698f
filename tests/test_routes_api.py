# tests/test_routes_api.py
import pytest

from conftest import future_day, future_dt, pickup_body

pytestmark = pytest.mark.anyio


async def _create(client, headers, **kw):
    r = await client.post("/collections", json=pickup_body(**kw), headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["id"]


async def _admin_assign(client, headers, cid, collector_id, days=7):
    r = await client.post(
        "/admin/collections/assign",
        json={"collection_id": cid, "collector_id": collector_id, "scheduled_date": future_dt(days)},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    return r.json()["route"]


async def test_assignment_reuses_route_for_same_day(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, admin = await make_user("administrator")
    c = await _create(client, req)
    d = await _create(client, req)

    route_id = await _admin_assign(client, admin, c, x["_id"])
    r = await client.get(f"/routes/collector/{x['_id']}", params={"date": str(future_day())}, headers=xh)
    assert r.status_code == 200
    body = r.json()
    assert body["route"]["id"] == route_id
    assert [m["id"] for m in body["collections"]] == [c]

    assert await _admin_assign(client, admin, d, x["_id"]) == route_id
    r = await client.get(f"/routes/collector/{x['_id']}", params={"date": str(future_day())}, headers=admin)
    assert r.json()["route"]["collections"] == [c, d]
    assert r.json()["optimized_order"] == [0, 1]


async def test_other_day_gets_its_own_route(client, make_user):
    _, req = await make_user("requester")
    x, _ = await make_user("collector")
    _, admin = await make_user("administrator")
    first = await _admin_assign(client, admin, await _create(client, req), x["_id"], days=7)
    second = await _admin_assign(client, admin, await _create(client, req), x["_id"], days=8)
    assert first != second


async def test_assign_rejects_bad_collector_and_past_dates(client, make_user):
    requester, req = await make_user("requester")
    x, _ = await make_user("collector")
    _, admin = await make_user("administrator")
    c = await _create(client, req)

    r = await client.put(f"/collections/{c}/assign", json={"collector_id": requester["_id"]}, headers=admin)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "collector_id"

    r = await client.put(
        f"/collections/{c}/assign",
        json={"collector_id": x["_id"], "scheduled_date": "2001-01-01T09:00:00"},
        headers=admin,
    )
    assert r.status_code == 400

    r = await client.put("/collections/missing/assign", json={"collector_id": x["_id"]}, headers=admin)
    assert r.status_code == 404


async def test_only_admins_assign(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    c = await _create(client, req)
    r = await client.put(f"/collections/{c}/assign", json={"collector_id": x["_id"]}, headers=req)
    assert r.status_code == 403
    r = await client.post("/admin/collections/assign", json={"collection_id": c, "collector_id": x["_id"]}, headers=xh)
    assert r.status_code == 403


async def test_assign_without_date_uses_today(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, admin = await make_user("administrator")
    c = await _create(client, req)
    r = await client.put(f"/collections/{c}/assign", json={"collector_id": x["_id"]}, headers=admin)
    assert r.status_code == 200
    r = await client.get(f"/routes/collector/{x['_id']}", headers=xh)
    assert r.json()["route"]["collections"] == [c]


async def test_route_completes_with_last_member(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, admin = await make_user("administrator")
    ids = [await _create(client, req) for _ in range(3)]
    route_id = None
    for cid in ids:
        route_id = await _admin_assign(client, admin, cid, x["_id"])

    async def status(cid, value):
        r = await client.put(f"/routes/{route_id}/status", json={"collection_id": cid, "status": value}, headers=xh)
        assert r.status_code == 200, r.text
        return r.json()["route_completed"]

    assert await status(ids[0], "in-progress") is False
    routes = (await client.get("/routes", headers=admin)).json()["routes"]
    assert routes[0]["status"] == "active"

    for i, cid in enumerate(ids):
        if i:
            await status(cid, "in-progress")
        done = await status(cid, "completed")
        assert done is (i == len(ids) - 1)

    r = await client.get("/routes", params={"status": "completed"}, headers=admin)
    assert [rt["id"] for rt in r.json()["routes"]] == [route_id]


async def test_completed_route_does_not_regress(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, admin = await make_user("administrator")
    c = await _create(client, req)
    route_id = await _admin_assign(client, admin, c, x["_id"])
    await client.put(f"/routes/{route_id}/status", json={"collection_id": c, "status": "in-progress"}, headers=xh)
    await client.put(f"/routes/{route_id}/status", json={"collection_id": c, "status": "completed"}, headers=xh)

    r = await client.put(f"/collections/{c}", json={"status": "in-progress"}, headers=admin)
    assert r.status_code == 200
    r = await client.get(f"/routes/collector/{x['_id']}", params={"date": str(future_day())}, headers=admin)
    assert r.json()["route"]["status"] == "completed"

    other = await _create(client, req)
    r = await client.put(f"/routes/{route_id}/assign", json={"collection_id": other}, headers=admin)
    assert r.status_code == 409


async def test_route_status_checks_membership_and_owner(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, yh = await make_user("collector")
    _, admin = await make_user("administrator")
    c = await _create(client, req)
    stray = await _create(client, req)
    route_id = await _admin_assign(client, admin, c, x["_id"])

    r = await client.put(f"/routes/{route_id}/status", json={"collection_id": c, "status": "in-progress"}, headers=yh)
    assert r.status_code == 403
    r = await client.put(f"/routes/{route_id}/status", json={"collection_id": stray, "status": "cancelled"}, headers=admin)
    assert r.status_code == 400
    r = await client.put("/routes/nope/status", json={"collection_id": c, "status": "in-progress"}, headers=admin)
    assert r.status_code == 404


async def test_collector_route_access(client, make_user):
    requester, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, yh = await make_user("collector")
    _, admin = await make_user("administrator")

    assert (await client.get(f"/routes/collector/{x['_id']}", headers=yh)).status_code == 403
    assert (await client.get(f"/routes/collector/{requester['_id']}", headers=admin)).status_code == 404
    r = await client.get(f"/routes/collector/{x['_id']}", headers=xh)
    assert r.status_code == 200
    assert r.json()["route"] is None
    assert r.json()["message"]


async def test_create_route_and_duplicate(client, make_user):
    _, req = await make_user("requester")
    x, _ = await make_user("collector")
    _, admin = await make_user("administrator")
    c = await _create(client, req)
    day = str(future_day())

    r = await client.post("/routes", json={"collector_id": x["_id"], "date": day, "collections": [c]}, headers=admin)
    assert r.status_code == 201, r.text
    route = r.json()
    assert route["collections"] == [c]
    assert route["status"] == "planned"

    r = await client.post("/routes", json={"collector_id": x["_id"], "date": day}, headers=admin)
    assert r.status_code == 409

    r = await client.get(f"/collections/{c}", headers=admin)
    assert r.json()["status"] == "assigned"
    assert r.json()["assigned_collector"] == x["_id"]


async def test_move_request_to_another_route(client, make_user):
    _, req = await make_user("requester")
    x, _ = await make_user("collector")
    y, _ = await make_user("collector")
    _, admin = await make_user("administrator")
    a = await _create(client, req)
    b = await _create(client, req)
    first = await _admin_assign(client, admin, a, x["_id"])
    await _admin_assign(client, admin, b, x["_id"])

    r = await client.post("/routes", json={"collector_id": y["_id"], "date": str(future_day())}, headers=admin)
    target = r.json()["id"]
    r = await client.put(f"/routes/{target}/assign", json={"collection_id": a}, headers=admin)
    assert r.status_code == 200
    assert r.json()["collection"]["assigned_collector"] == y["_id"]

    routes = {rt["id"]: rt for rt in (await client.get("/routes", headers=admin)).json()["routes"]}
    assert routes[first]["collections"] == [b]
    assert routes[first]["optimized_order"] == [0]
    assert routes[target]["collections"] == [a]


async def test_optimize_orders_by_distance(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    _, admin = await make_user("administrator")
    far = await _create(client, req, address="30 Far Avenue", lat=0.0, lng=0.3)
    start = await _create(client, req, address="1 Start Street", lat=0.0, lng=0.0)
    nowhere = await _create(client, req, address="No Coordinates Road")
    near = await _create(client, req, address="10 Near Avenue", lat=0.0, lng=0.1)
    route_id = None
    for cid in (start, far, nowhere, near):
        route_id = await _admin_assign(client, admin, cid, x["_id"])

    assert (await client.put(f"/routes/{route_id}/optimize", headers=xh)).status_code == 403
    r = await client.put(f"/routes/{route_id}/optimize", headers=admin)
    assert r.status_code == 200
    assert r.json()["optimized_order"] == [0, 3, 1, 2]

    r = await client.get(f"/routes/collector/{x['_id']}", params={"date": str(future_day())}, headers=xh)
    assert [m["id"] for m in r.json()["collections"]] == [start, near, far, nowhere]


async def test_route_left_with_only_completed_members_completes(client, make_user):
    _, req = await make_user("requester")
    x, xh = await make_user("collector")
    y, _ = await make_user("collector")
    _, admin = await make_user("administrator")
    a = await _create(client, req)
    b = await _create(client, req)
    route_id = await _admin_assign(client, admin, a, x["_id"])
    await _admin_assign(client, admin, b, x["_id"])

    await client.put(f"/routes/{route_id}/status", json={"collection_id": a, "status": "in-progress"}, headers=xh)
    r = await client.put(f"/routes/{route_id}/status", json={"collection_id": a, "status": "completed"}, headers=xh)
    assert r.json()["route_completed"] is False

    await _admin_assign(client, admin, b, y["_id"])
    routes = {rt["id"]: rt for rt in (await client.get("/routes", headers=admin)).json()["routes"]}
    assert routes[route_id]["collections"] == [a]
    assert routes[route_id]["status"] == "completed"


async def test_non_admin_with_bad_collector_is_forbidden(client, make_user):
    _, req = await make_user("requester")
    c = await _create(client, req)
    r = await client.put(f"/collections/{c}/assign", json={"collector_id": "nobody"}, headers=req)
    assert r.status_code == 403
