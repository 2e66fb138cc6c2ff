import csv
import io
from typing import Iterable, Optional

from core.config import settings

CSV_HEADERS = [
    "SKU",
    "Description",
    "Category",
    "Quantity on Hand",
    "Minimum Quantity",
    "Unit of Measure",
    "Location",
    "Unit Cost",
    "Sell Price",
    "External ID",
    "Notes",
    "Status",
    "Created At",
    "Updated At",
]


def stock_status(quantity_on_hand: int, min_quantity: Optional[int] = None) -> str:
    threshold = min_quantity if min_quantity is not None else settings.low_stock_threshold
    if quantity_on_hand <= 0:
        return "Out of Stock"
    if quantity_on_hand <= threshold:
        return "Low Stock"
    return "In Stock"


def _fmt(value) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def inventory_csv(items: Iterable[dict]) -> str:
    """Render inventory rows (InventoryItem.to_schema dicts) as CSV text."""
    sio = io.StringIO()
    writer = csv.writer(sio)
    writer.writerow(CSV_HEADERS)
    for it in items:
        qty = int(it.get("quantity_on_hand") or 0)
        writer.writerow(
            [
                it["sku"],
                it.get("description") or "",
                it.get("category") or "",
                qty,
                _fmt(it.get("min_quantity")),
                it.get("uom") or "",
                it.get("location") or "",
                _fmt(it.get("unit_cost")),
                _fmt(it.get("sell_price")),
                it.get("external_id") or "",
                it.get("notes") or "",
                stock_status(qty, it.get("min_quantity")),
                _fmt(it.get("created_at")),
                _fmt(it.get("updated_at")),
            ]
        )
    return sio.getvalue()
