import pytest

pytestmark = pytest.mark.asyncio

SLIP = """PACKING SLIP 20250440
QTY  SKU  DESCRIPTION
DF44  Sewer cleanout cover  10
5 ADV2424 Detection plate raw
"""


async def test_scan_text_suggests_matched_lines(client, seed_items, get_quantity):
    await seed_items({"DF44": 3})
    await seed_items({"PLT9": 3}, description="24x24 Detection Plate Raw")

    r = await client.post("/scan/packing-slip", data={"text": SLIP})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["shipment_id"] == "20250440"
    assert [(ln["sku"], ln["quantity"], ln["matched_sku"]) for ln in body["lines"]] == [
        ("DF44", 10, "DF44"),
        ("ADV2424", 5, "PLT9"),
    ]
    # scanning never touches stock
    assert await get_quantity("DF44") == 3


async def test_scan_image_uses_ocr_reader(client, fake_ocr, seed_items):
    await seed_items({"DF44": 3})
    fake_ocr.text = SLIP

    r = await client.post("/scan/packing-slip", files={"file": ("slip.png", b"\x89PNG" + b"0" * 200, "image/png")})

    assert r.status_code == 200, r.text
    assert r.json()["raw_text"] == SLIP
    assert r.json()["lines"][0]["matched_sku"] == "DF44"


@pytest.mark.parametrize(
    "upload",
    [
        ("slip.png", b"0" * 10, "image/png"),
        ("slip.pdf", b"0" * 500, "application/pdf"),
        ("slip.txt", b"0" * 500, "application/octet-stream"),
    ],
)
async def test_scan_rejects_bad_uploads(client, upload):
    r = await client.post("/scan/packing-slip", files={"file": upload})
    assert r.status_code == 400


async def test_scan_needs_input(client):
    assert (await client.post("/scan/packing-slip", data={"text": "   "})).status_code == 400


async def test_scan_allowed_for_submitter_not_viewer(client, act_as):
    act_as("submitter")
    assert (await client.post("/scan/packing-slip", data={"text": SLIP})).status_code == 200
    act_as("viewer")
    assert (await client.post("/scan/packing-slip", data={"text": SLIP})).status_code == 403
