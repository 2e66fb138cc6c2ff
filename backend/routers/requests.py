from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_actor, require_capability
from core.dependencies import get_ledger
from core.ledger import ShipmentLedger
from core.roles import Actor, Capability
from db.database import get_async_session, ShipmentRequest as ShipmentRequestModel
from routers.shipments import request_read, shipment_read
from schemas.shipments import RequestRead, ShipmentRead

router = APIRouter()


@router.get("/", response_model=List[RequestRead])
async def list_requests(
    actor: Actor = Depends(require_capability(Capability.REVIEW_REQUEST)),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(ShipmentRequestModel)
        .where(ShipmentRequestModel.status == "pending")
        .order_by(ShipmentRequestModel.requested_at.desc())
    )
    return [RequestRead(**m.to_schema) for m in res.scalars().all()]


@router.get("/mine", response_model=List[RequestRead])
async def list_my_requests(
    actor: Actor = Depends(current_actor),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(
        select(ShipmentRequestModel)
        .where(ShipmentRequestModel.requestor_id == actor.user_id)
        .order_by(ShipmentRequestModel.requested_at.desc())
    )
    return [RequestRead(**m.to_schema) for m in res.scalars().all()]


@router.post("/{request_id}/approve", response_model=ShipmentRead)
async def approve_request(
    request_id: UUID,
    actor: Actor = Depends(require_capability(Capability.REVIEW_REQUEST)),
    ledger: ShipmentLedger = Depends(get_ledger),
):
    return shipment_read(await ledger.approve_request(request_id, actor))


@router.post("/{request_id}/reject", response_model=RequestRead)
async def reject_request(
    request_id: UUID,
    actor: Actor = Depends(require_capability(Capability.REVIEW_REQUEST)),
    ledger: ShipmentLedger = Depends(get_ledger),
):
    record = await ledger.reject_request(request_id, actor)
    record.status = "rejected"
    return request_read(record)
