import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from core.auth import require_capability
from core.export import inventory_csv, stock_status
from core.ledger import SOURCE_ADMIN, SOURCE_SEED
from core.roles import Actor, Capability, Role
from db.database import (
    get_async_session,
    InventoryItem as InventoryItemModel,
    InventoryMovement as InventoryMovementModel,
)
from schemas.inventory import (
    InventoryBulkResult,
    InventoryBulkUpsert,
    InventoryItemCreate,
    InventoryItemRead,
    InventoryItemUpdate,
    InventoryMovementRead,
    MovementSource,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_UPDATABLE_FIELDS = (
    "description",
    "category",
    "location",
    "uom",
    "min_quantity",
    "unit_cost",
    "sell_price",
    "external_id",
    "notes",
    "is_active",
)


def _read(model: InventoryItemModel) -> InventoryItemRead:
    data = model.to_schema
    data["status"] = stock_status(data["quantity_on_hand"], data["min_quantity"])
    return InventoryItemRead(**data)


def _search_stmt(q: Optional[str], include_inactive: bool):
    stmt = select(InventoryItemModel)
    if not include_inactive:
        stmt = stmt.where(InventoryItemModel.is_active.is_(True))
    term = (q or "").strip()
    if term:
        like = f"%{term}%"
        stmt = stmt.where(
            or_(
                InventoryItemModel.sku.ilike(like),
                InventoryItemModel.description.ilike(like),
                InventoryItemModel.category.ilike(like),
                InventoryItemModel.location.ilike(like),
            )
        )
    return stmt.order_by(InventoryItemModel.sku.asc())


async def _get_by_sku(db: AsyncSession, sku: str) -> InventoryItemModel:
    res = await db.execute(
        select(InventoryItemModel).where(func.lower(InventoryItemModel.sku) == sku.strip().lower())
    )
    model = res.scalar_one_or_none()
    if not model:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Item {sku} not found")
    return model


def _movement(model: InventoryItemModel, change: int, source_type: str, actor: Actor) -> InventoryMovementModel:
    return InventoryMovementModel(
        inventory_item_id=model.id,
        sku=model.sku,
        change=int(change),
        quantity_after=int(model.quantity_on_hand),
        source_type=source_type,
        created_by_user_id=actor.user_id,
    )


@router.get("/items", response_model=List[InventoryItemRead])
async def list_items(
    q: Optional[str] = Query(default=None, description="Substring over SKU, description, category, location"),
    include_inactive: bool = False,
    actor: Actor = Depends(require_capability(Capability.READ_INVENTORY)),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(_search_stmt(q, include_inactive))
    return [_read(m) for m in res.scalars().all()]


@router.get("/export.csv")
async def export_inventory_csv(
    q: Optional[str] = None,
    include_inactive: bool = False,
    actor: Actor = Depends(require_capability(Capability.READ_INVENTORY)),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(_search_stmt(q, include_inactive))
    body = inventory_csv(m.to_schema for m in res.scalars().all())
    filename = f"inventory-export-{datetime.now().date().isoformat()}.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/movements", response_model=List[InventoryMovementRead])
async def list_movements(
    sku: Optional[str] = None,
    source_type: Optional[MovementSource] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(default=200, ge=1, le=1000),
    actor: Actor = Depends(require_capability(Capability.READ_HISTORY)),
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(InventoryMovementModel)
    if sku:
        stmt = stmt.where(func.lower(InventoryMovementModel.sku) == sku.strip().lower())
    if source_type:
        stmt = stmt.where(InventoryMovementModel.source_type == source_type)
    if since:
        stmt = stmt.where(InventoryMovementModel.created_at >= since)
    if until:
        stmt = stmt.where(InventoryMovementModel.created_at < until)
    stmt = stmt.order_by(InventoryMovementModel.created_at.desc()).limit(limit)
    res = await db.execute(stmt)
    return [InventoryMovementRead(**m.to_schema) for m in res.scalars().all()]


@router.get("/items/{sku}", response_model=InventoryItemRead)
async def get_item(
    sku: str,
    actor: Actor = Depends(require_capability(Capability.READ_INVENTORY)),
    db: AsyncSession = Depends(get_async_session),
):
    return _read(await _get_by_sku(db, sku))


@router.post("/items", response_model=InventoryItemRead, status_code=status.HTTP_201_CREATED)
async def create_item(
    payload: InventoryItemCreate,
    actor: Actor = Depends(require_capability(Capability.EDIT_ITEM)),
    db: AsyncSession = Depends(get_async_session),
):
    existing = await db.execute(
        select(InventoryItemModel.id).where(func.lower(InventoryItemModel.sku) == payload.sku.lower())
    )
    if existing.first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"SKU {payload.sku} already exists")

    model = InventoryItemModel(**payload.model_dump())
    db.add(model)
    try:
        await db.flush()
        if model.quantity_on_hand:
            db.add(_movement(model, model.quantity_on_hand, SOURCE_SEED, actor))
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("[inventory] create_item %s failed", payload.sku)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create item")
    logger.info("[inventory] item %s created by %s (qty=%s)", model.sku, actor.email, model.quantity_on_hand)
    return _read(model)


@router.post("/items/bulk", response_model=InventoryBulkResult)
async def bulk_upsert_items(
    payload: InventoryBulkUpsert,
    actor: Actor = Depends(require_capability(Capability.EDIT_ITEM)),
    db: AsyncSession = Depends(get_async_session),
):
    """Seed import: create missing SKUs and overwrite the fields of existing ones."""
    if actor.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")

    created = updated = 0
    try:
        res = await db.execute(
            select(InventoryItemModel).where(
                func.lower(InventoryItemModel.sku).in_([it.sku.lower() for it in payload.items])
            )
        )
        by_sku = {m.sku.lower(): m for m in res.scalars().all()}

        for item in payload.items:
            data = item.model_dump()
            model = by_sku.get(item.sku.lower())
            if model is None:
                model = InventoryItemModel(**data)
                db.add(model)
                await db.flush()
                by_sku[item.sku.lower()] = model
                created += 1
                if model.quantity_on_hand:
                    db.add(_movement(model, model.quantity_on_hand, SOURCE_SEED, actor))
                continue

            change = int(data["quantity_on_hand"]) - int(model.quantity_on_hand or 0)
            for field in _UPDATABLE_FIELDS:
                if field in data and field != "is_active":
                    setattr(model, field, data[field])
            model.quantity_on_hand = data["quantity_on_hand"]
            model.is_active = True
            updated += 1
            if change:
                db.add(_movement(model, change, SOURCE_SEED, actor))

        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Inventory changed during import; retry")
    except Exception:
        await db.rollback()
        logger.exception("[inventory] bulk upsert failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Bulk import failed")

    logger.info("[inventory] bulk upsert by %s: created=%d updated=%d", actor.email, created, updated)
    return InventoryBulkResult(created=created, updated=updated)


@router.patch("/items/{sku}", response_model=InventoryItemRead)
async def update_item(
    sku: str,
    payload: InventoryItemUpdate,
    actor: Actor = Depends(require_capability(Capability.EDIT_ITEM)),
    db: AsyncSession = Depends(get_async_session),
):
    """Manual correction (e.g. a physical recount). Not a shipment, so it bypasses the ledger."""
    model = await _get_by_sku(db, sku)
    data = payload.model_dump(exclude_unset=True)

    for field in _UPDATABLE_FIELDS:
        if field in data:
            if field in ("description", "uom", "is_active") and data[field] is None:
                continue
            setattr(model, field, data[field])

    new_qty = data.get("quantity_on_hand")
    change = 0
    if new_qty is not None:
        change = int(new_qty) - int(model.quantity_on_hand or 0)
        model.quantity_on_hand = int(new_qty)

    try:
        if change:
            db.add(_movement(model, change, SOURCE_ADMIN, actor))
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Item {sku} was changed by someone else; reload and retry",
        )
    except Exception:
        await db.rollback()
        logger.exception("[inventory] update_item %s failed", sku)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update item")

    if change:
        logger.info("[inventory] %s adjusted by %s: %+d -> %d", model.sku, actor.email, change, model.quantity_on_hand)
    return _read(model)


@router.delete("/items/{sku}", response_model=InventoryItemRead)
async def deactivate_item(
    sku: str,
    actor: Actor = Depends(require_capability(Capability.EDIT_ITEM)),
    db: AsyncSession = Depends(get_async_session),
):
    model = await _get_by_sku(db, sku)
    model.is_active = False
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Item {sku} was changed by someone else")
    logger.info("[inventory] %s deactivated by %s", model.sku, actor.email)
    return _read(model)
