import csv
import io

import pytest

pytestmark = pytest.mark.asyncio


async def test_create_and_get_item(client):
    r = await client.post(
        "/inventory/items",
        json={"sku": " DF44 ", "description": "Sewer cleanout", "quantity_on_hand": 12, "uom": None},
    )

    assert r.status_code == 201, r.text
    item = r.json()
    assert item["sku"] == "DF44"
    assert item["uom"] == "ea"
    assert item["status"] == "In Stock"

    r = await client.get("/inventory/items/df44")
    assert r.status_code == 200
    assert r.json()["quantity_on_hand"] == 12

    moves = (await client.get("/inventory/movements", params={"sku": "DF44"})).json()
    assert [(m["change"], m["source_type"]) for m in moves] == [(12, "seed")]


async def test_duplicate_sku_is_409(client, seed_items):
    await seed_items({"DF44": 1})

    r = await client.post("/inventory/items", json={"sku": "df44", "description": "dup"})

    assert r.status_code == 409


async def test_search_and_status(client, seed_items):
    await seed_items({"A1": 0, "B2": 5, "C3": 50}, category="Castings")
    await seed_items({"ZZ": 1}, description="Bolt pack")

    r = await client.get("/inventory/items")
    assert [(i["sku"], i["status"]) for i in r.json()] == [
        ("A1", "Out of Stock"),
        ("B2", "Low Stock"),
        ("C3", "In Stock"),
        ("ZZ", "Low Stock"),
    ]

    assert [i["sku"] for i in (await client.get("/inventory/items", params={"q": "bolt"})).json()] == ["ZZ"]
    assert len((await client.get("/inventory/items", params={"q": "castings"})).json()) == 3


async def test_patch_records_admin_adjustment(client, act_as, seed_items):
    await seed_items({"A1": 10})
    act_as("editor")

    r = await client.patch("/inventory/items/A1", json={"quantity_on_hand": 7, "location": "Yard 2"})

    assert r.status_code == 200, r.text
    assert r.json()["quantity_on_hand"] == 7
    assert r.json()["location"] == "Yard 2"

    moves = (await client.get("/inventory/movements", params={"source_type": "admin_adjust"})).json()
    assert [(m["sku"], m["change"], m["quantity_after"]) for m in moves] == [("A1", -3, 7)]


async def test_submitter_cannot_edit_items(client, act_as, seed_items):
    await seed_items({"A1": 10})
    act_as("submitter")

    assert (await client.get("/inventory/items")).status_code == 200
    assert (await client.patch("/inventory/items/A1", json={"quantity_on_hand": 1})).status_code == 403
    assert (await client.post("/inventory/items", json={"sku": "X", "description": "x"})).status_code == 403


async def test_soft_delete_hides_item(client, seed_items):
    await seed_items({"A1": 10, "B2": 1})

    r = await client.delete("/inventory/items/A1")

    assert r.status_code == 200
    assert r.json()["is_active"] is False
    assert [i["sku"] for i in (await client.get("/inventory/items")).json()] == ["B2"]
    assert len((await client.get("/inventory/items", params={"include_inactive": True})).json()) == 2


async def test_export_csv(client, seed_items):
    await seed_items({"A1": 0, "B2": 40}, location="Rack 1")

    r = await client.get("/inventory/export.csv")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment" in r.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(r.text)))
    assert [(row["SKU"], row["Quantity on Hand"], row["Status"], row["Location"]) for row in rows] == [
        ("A1", "0", "Out of Stock", "Rack 1"),
        ("B2", "40", "In Stock", "Rack 1"),
    ]


async def test_bulk_upsert_is_admin_only(client, act_as, seed_items, get_quantity):
    await seed_items({"A1": 10})
    payload = {
        "items": [
            {"sku": "a1", "description": "Widget v2", "quantity_on_hand": 4},
            {"sku": "N1", "description": "New thing", "quantity_on_hand": 3},
        ]
    }

    act_as("editor")
    assert (await client.post("/inventory/items/bulk", json=payload)).status_code == 403

    act_as("admin")
    r = await client.post("/inventory/items/bulk", json=payload)

    assert r.status_code == 200, r.text
    assert r.json() == {"created": 1, "updated": 1}
    assert await get_quantity("A1") == 4
    assert await get_quantity("N1") == 3
    moves = (await client.get("/inventory/movements", params={"source_type": "seed"})).json()
    assert sorted((m["sku"], m["change"]) for m in moves) == [("A1", -6), ("N1", 3)]


async def test_shipments_show_up_in_movements(client, seed_items):
    await seed_items({"A1": 10})
    await client.post(
        "/shipments/",
        json={"shipment_id": "S1", "type": "outgoing", "lines": [{"sku": "A1", "quantity": 2}]},
    )

    moves = (await client.get("/inventory/movements", params={"sku": "a1"})).json()

    assert len(moves) == 1
    assert moves[0]["source_type"] == "shipment_apply"
    assert moves[0]["shipment_label"] == "S1"
    assert moves[0]["quantity_after"] == 8
