from collections import Counter
from dataclasses import asdict
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_actor, require_capability
from core.dependencies import get_ledger
from core.ledger import OUTGOING, ShipmentDraft, ShipmentLedger
from core.roles import Actor, Capability
from core.stores.base import RequestRecord, ShipmentRecord
from db.database import get_async_session, Shipment as ShipmentModel
from schemas.shipments import (
    DuplicateCheck,
    DuplicateMatch,
    RequestRead,
    ShipmentCreate,
    ShipmentRead,
    ShipmentType,
    ShipmentUpdate,
    SubmitResult,
)

router = APIRouter()


def shipment_read(record: ShipmentRecord, is_duplicate_label: bool = False) -> ShipmentRead:
    return ShipmentRead(**asdict(record), is_duplicate_label=is_duplicate_label)


def request_read(record: RequestRecord) -> RequestRead:
    return RequestRead(**asdict(record))


def _label_key(label: str) -> str:
    return (label or "").strip().casefold()


async def _label_counts(db: AsyncSession) -> Counter:
    res = await db.execute(select(ShipmentModel.shipment_id))
    return Counter(_label_key(label) for label in res.scalars().all())


def history_sort_key(row: dict, shipment_type: Optional[str]):
    """
    Outgoing history lists numeric labels first (largest first), then the rest
    alphabetically. Everything else is newest first.
    """
    if shipment_type == OUTGOING:
        label = (row["shipment_id"] or "").strip()
        if label.isascii() and label.isdecimal():
            return (0, -int(label), "")
        return (1, 0, label.casefold())
    return (0, -row["timestamp"].timestamp(), "")


@router.post("/", response_model=SubmitResult, status_code=status.HTTP_201_CREATED)
async def submit_shipment(
    payload: ShipmentCreate,
    actor: Actor = Depends(current_actor),
    ledger: ShipmentLedger = Depends(get_ledger),
):
    """
    Log a shipment. Admins and editors apply it immediately; submitters
    create a pending request instead.

    A label already used by another shipment or pending request answers 409
    with the matches unless `confirm_duplicate` is set.
    """
    if not payload.confirm_duplicate:
        matches = await ledger.find_duplicates(payload.shipment_id)
        if matches:
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={
                    "warning": "duplicate_shipment_id",
                    "shipment_id": payload.shipment_id,
                    "matches": [
                        DuplicateMatch(**asdict(m)).model_dump(mode="json") for m in matches
                    ],
                },
            )

    draft = ShipmentDraft(
        shipment_id=payload.shipment_id,
        type=payload.type,
        lines=[ln.model_dump() for ln in payload.lines],
    )
    result = await ledger.submit_or_apply(draft, actor)
    return SubmitResult(
        outcome=result.outcome,
        shipment=shipment_read(result.shipment) if result.shipment else None,
        request=request_read(result.request) if result.request else None,
    )


@router.get("/duplicates", response_model=DuplicateCheck)
async def check_duplicate_label(
    shipment_id: str,
    exclude_id: Optional[UUID] = None,
    actor: Actor = Depends(current_actor),
    ledger: ShipmentLedger = Depends(get_ledger),
):
    matches = await ledger.find_duplicates(shipment_id, exclude_id=exclude_id)
    return DuplicateCheck(
        shipment_id=shipment_id.strip(),
        is_duplicate=bool(matches),
        matches=[DuplicateMatch(**asdict(m)) for m in matches],
    )


@router.get("/", response_model=List[ShipmentRead])
async def list_shipments(
    type: Optional[ShipmentType] = None,
    actor: Actor = Depends(require_capability(Capability.READ_HISTORY)),
    db: AsyncSession = Depends(get_async_session),
):
    label_counts = await _label_counts(db)

    stmt = select(ShipmentModel)
    if type:
        stmt = stmt.where(ShipmentModel.type == type)
    rows = [m.to_schema for m in (await db.execute(stmt)).scalars().all()]
    rows.sort(key=lambda r: history_sort_key(r, type))
    return [
        ShipmentRead(**r, is_duplicate_label=label_counts[_label_key(r["shipment_id"])] > 1)
        for r in rows
    ]


@router.get("/{shipment_pk}", response_model=ShipmentRead)
async def get_shipment(
    shipment_pk: UUID,
    actor: Actor = Depends(require_capability(Capability.READ_HISTORY)),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(select(ShipmentModel).where(ShipmentModel.id == shipment_pk))
    model = res.scalar_one_or_none()
    if not model:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shipment not found")
    label_counts = await _label_counts(db)
    return ShipmentRead(**model.to_schema, is_duplicate_label=label_counts[_label_key(model.shipment_id)] > 1)


@router.patch("/{shipment_pk}", response_model=ShipmentRead)
async def edit_shipment(
    shipment_pk: UUID,
    payload: ShipmentUpdate,
    actor: Actor = Depends(require_capability(Capability.MODIFY_SHIPMENT)),
    ledger: ShipmentLedger = Depends(get_ledger),
):
    record = await ledger.edit_shipment(
        shipment_pk,
        actor,
        lines=[ln.model_dump() for ln in payload.lines] if payload.lines is not None else None,
        shipment_id=payload.shipment_id,
        type=payload.type,
    )
    return shipment_read(record)


@router.delete("/{shipment_pk}", response_model=ShipmentRead)
async def delete_shipment(
    shipment_pk: UUID,
    actor: Actor = Depends(require_capability(Capability.MODIFY_SHIPMENT)),
    ledger: ShipmentLedger = Depends(get_ledger),
):
    return shipment_read(await ledger.delete_shipment(shipment_pk, actor))
