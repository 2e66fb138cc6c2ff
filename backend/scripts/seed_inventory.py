"""
Seed a sample inventory catalog.

Run locally:
  python backend/scripts/seed_inventory.py

It uses the same DATABASE_* env vars as the backend (dotenv supported by core.config).
Does nothing when the inventory already has rows. Opening quantities are
recorded as 'seed' movements so the audit trail starts from them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select

from core.ledger import SOURCE_SEED
from db.database import (
    async_session_maker,
    create_db_and_tables,
    InventoryItem,
    InventoryMovement,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedItem:
    sku: str
    description: str
    quantity_on_hand: int
    uom: str = "ea"
    category: Optional[str] = None
    location: Optional[str] = None


SEED_ITEMS: list[SeedItem] = [
    SeedItem("401.010B", "Manhole, Frame and Perforated Cover (PLT QTY 5 - #366)", 29),
    SeedItem("401.010BC", "Manhole, Perforated Cover Only", 0),
    SeedItem("401.010BSTM", 'Storm Manhole, Frame and Perforated Cover marked "STORM" (PLT QTY 5 #366)', 50),
    SeedItem("401.010C", "Manhole, Solid Cover Only", 90),
    SeedItem("401.010E", "Electrical Manhole, Frame and Cover", 97),
    SeedItem("ADV1824", "18x24 Detection Plate Raw (#29)", 25),
    SeedItem("ADV2424", "24x24 Detection Plate Raw (#40)", 430),
    SeedItem("CMJBP04", '4" Plain Alloy Bolt Pack with Gasket 3.6# (Box Qty 300)', 359),
    SeedItem("CMJBP06", '6" Plain Alloy Bolt Pack with Gasket 5.4# (Box Qty 200)', 1174),
    SeedItem("DF44", '4" Sewer Cleanout - Cover & Frame (QTY 50/BOX 7#)', 283),
    SeedItem("DF66I", '6" Sewer Cleanout w. Built-in-Gasket (QTY 30/BOX #19)', 196),
    SeedItem("LD24R150", '24" x 1 1/2" Manhole Adjustment Unit (PLT QTY 58 - #4.75)', 208),
]


async def seed(session_maker=async_session_maker, items: list[SeedItem] = SEED_ITEMS) -> int:
    """Insert `items` into an empty inventory. Returns how many rows were created."""
    async with session_maker() as db:
        existing = (await db.execute(select(func.count()).select_from(InventoryItem))).scalar_one()
        if existing:
            logger.info("Inventory already has %d item(s); skipping seed", existing)
            return 0

        for s in items:
            item = InventoryItem(
                sku=s.sku,
                description=s.description,
                quantity_on_hand=s.quantity_on_hand,
                uom=s.uom,
                category=s.category,
                location=s.location,
            )
            db.add(item)
            await db.flush()
            if s.quantity_on_hand:
                db.add(
                    InventoryMovement(
                        inventory_item_id=item.id,
                        sku=s.sku,
                        change=s.quantity_on_hand,
                        quantity_after=s.quantity_on_hand,
                        source_type=SOURCE_SEED,
                    )
                )
        await db.commit()
        return len(items)


async def main() -> None:
    await create_db_and_tables()
    created = await seed()
    print(f"Done. Inventory items created: {created}.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
