import uuid

import pytest

pytestmark = pytest.mark.asyncio


async def _submit(client, act_as, shipment_id="R1", shipment_type="outgoing", **quantities):
    act_as("submitter")
    r = await client.post(
        "/shipments/",
        json={
            "shipment_id": shipment_id,
            "type": shipment_type,
            "lines": [{"sku": sku, "quantity": q} for sku, q in quantities.items()],
        },
    )
    assert r.status_code == 201, r.text
    return r.json()["request"]


async def test_admin_lists_and_approves(client, act_as, seed_items, get_quantity):
    await seed_items({"A1": 10})
    req = await _submit(client, act_as, A1=3)

    mine = await client.get("/requests/mine")
    assert [r["id"] for r in mine.json()] == [req["id"]]

    act_as("admin")
    pending = await client.get("/requests/")
    assert pending.status_code == 200
    assert [r["id"] for r in pending.json()] == [req["id"]]

    r = await client.post(f"/requests/{req['id']}/approve")

    assert r.status_code == 200, r.text
    shipment = r.json()
    assert shipment["submitted_by_email"] == "submitter@example.com"
    assert shipment["approved_by_email"] == "admin@example.com"
    assert await get_quantity("A1") == 7
    assert (await client.get("/requests/")).json() == []


async def test_failed_approval_keeps_request(client, act_as, seed_items, get_quantity):
    await seed_items({"A1": 2})
    req = await _submit(client, act_as, A1=5)

    act_as("admin")
    r = await client.post(f"/requests/{req['id']}/approve")

    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "InsufficientStock"
    assert [x["id"] for x in (await client.get("/requests/")).json()] == [req["id"]]
    assert await get_quantity("A1") == 2


async def test_reject(client, act_as, seed_items, get_quantity):
    await seed_items({"A1": 10})
    req = await _submit(client, act_as, A1=3)

    act_as("admin")
    r = await client.post(f"/requests/{req['id']}/reject")

    assert r.status_code == 200
    assert r.json()["status"] == "rejected"
    assert (await client.get("/requests/")).json() == []
    assert await get_quantity("A1") == 10

    again = await client.post(f"/requests/{req['id']}/approve")
    assert again.status_code == 404
    assert again.json()["detail"]["error"] == "RequestNotFound"


async def test_review_queue_holds_only_open_requests(client, act_as, seed_items):
    await seed_items({"A1": 10})
    approved = await _submit(client, act_as, "R1", A1=1)
    rejected = await _submit(client, act_as, "R2", A1=1)

    act_as("admin")
    assert (await client.post(f"/requests/{approved['id']}/approve")).status_code == 200
    assert (await client.post(f"/requests/{rejected['id']}/reject")).status_code == 200
    assert (await client.get("/requests/")).json() == []

    waiting = await _submit(client, act_as, "R3", A1=1)
    act_as("admin")
    rows = (await client.get("/requests/")).json()
    assert [(r["id"], r["status"]) for r in rows] == [(waiting["id"], "pending")]


async def test_only_admins_review(client, act_as, seed_items):
    await seed_items({"A1": 10})
    req = await _submit(client, act_as, A1=3)

    for role in ("editor", "submitter", "viewer"):
        act_as(role)
        assert (await client.get("/requests/")).status_code == 403
        assert (await client.post(f"/requests/{req['id']}/approve")).status_code == 403
        assert (await client.post(f"/requests/{req['id']}/reject")).status_code == 403


async def test_unknown_request(client):
    r = await client.post(f"/requests/{uuid.uuid4()}/approve")
    assert r.status_code == 404
