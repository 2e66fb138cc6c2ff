import logging
import uuid
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from core.errors import LedgerError, OperationFailed, TransactionFailed
from core.stores.base import (
    LabelRecord,
    LedgerStore,
    LedgerTransaction,
    LineData,
    MovementRecord,
    RequestRecord,
    ShipmentRecord,
    StockLevel,
    StoreConflict,
)
from db.database import (
    InventoryItem as InventoryItemModel,
    InventoryMovement as InventoryMovementModel,
    Shipment as ShipmentModel,
    ShipmentLine as ShipmentLineModel,
    ShipmentRequest as ShipmentRequestModel,
    ShipmentRequestLine as ShipmentRequestLineModel,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _is_conflict(exc: BaseException) -> bool:
    if isinstance(exc, (StaleDataError, StoreConflict)):
        return True
    if isinstance(exc, DBAPIError):
        orig = getattr(exc, "orig", None)
        for candidate in (orig, getattr(orig, "__cause__", None)):
            code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
            if code in _RETRYABLE_SQLSTATES:
                return True
        # SQLite reports writer contention as "database is locked".
        if "database is locked" in str(orig or exc).lower():
            return True
    return False


def _lines_out(rows) -> list[LineData]:
    return [LineData(sku=r.item_sku, description=r.description or "", quantity=int(r.quantity)) for r in rows]


def _shipment_out(m: ShipmentModel) -> ShipmentRecord:
    return ShipmentRecord(
        id=m.id,
        shipment_id=m.shipment_id,
        type=m.type,
        lines=_lines_out(m.lines),
        timestamp=m.timestamp,
        submitted_by_user_id=m.submitted_by_user_id,
        submitted_by_email=m.submitted_by_email,
        approved_by_email=m.approved_by_email,
        updated_by_user_id=m.updated_by_user_id,
        updated_by_email=m.updated_by_email,
        updated_at=m.updated_at,
    )


def _request_out(m: ShipmentRequestModel) -> RequestRecord:
    return RequestRecord(
        id=m.id,
        shipment_id=m.shipment_id,
        type=m.type,
        status=m.status,
        lines=_lines_out(m.lines),
        requestor_id=m.requestor_id,
        requestor_email=m.requestor_email,
        requested_at=m.requested_at,
    )


class _SqlTransaction(LedgerTransaction):
    def __init__(self, session: AsyncSession):
        self.session = session
        self._items: dict[str, InventoryItemModel] = {}

    async def lock_items(self, skus: Iterable[str]) -> dict[str, StockLevel]:
        wanted = sorted(set(skus))
        if not wanted:
            return {}
        # Sorted lock order keeps concurrent multi-SKU transactions from deadlocking.
        res = await self.session.execute(
            select(InventoryItemModel)
            .where(InventoryItemModel.sku.in_(wanted))
            .order_by(InventoryItemModel.sku)
            .with_for_update()
        )
        out: dict[str, StockLevel] = {}
        for it in res.scalars().all():
            self._items[it.sku] = it
            out[it.sku] = StockLevel(
                sku=it.sku,
                description=it.description,
                quantity_on_hand=int(it.quantity_on_hand or 0),
            )
        return out

    async def set_quantity(self, sku: str, quantity: int) -> None:
        it = self._items.get(sku)
        if it is None:
            raise RuntimeError(f"set_quantity({sku!r}) without lock_items")
        it.quantity_on_hand = int(quantity)

    async def record_movement(self, movement: MovementRecord) -> None:
        it = self._items.get(movement.sku)
        if it is None:
            raise RuntimeError(f"record_movement({movement.sku!r}) without lock_items")
        self.session.add(
            InventoryMovementModel(
                inventory_item_id=it.id,
                sku=movement.sku,
                change=int(movement.change),
                quantity_after=int(movement.quantity_after),
                source_type=movement.source_type,
                shipment_id=movement.shipment_id,
                shipment_label=movement.shipment_label,
                created_by_user_id=movement.created_by_user_id,
            )
        )

    async def _load_shipment(self, shipment_pk: uuid.UUID) -> Optional[ShipmentModel]:
        res = await self.session.execute(
            select(ShipmentModel).where(ShipmentModel.id == shipment_pk).with_for_update()
        )
        return res.scalar_one_or_none()

    async def get_shipment(self, shipment_pk: uuid.UUID) -> Optional[ShipmentRecord]:
        m = await self._load_shipment(shipment_pk)
        return _shipment_out(m) if m else None

    async def insert_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        m = ShipmentModel(
            id=uuid.uuid4(),
            shipment_id=record.shipment_id,
            type=record.type,
            timestamp=record.timestamp,
            submitted_by_user_id=record.submitted_by_user_id,
            submitted_by_email=record.submitted_by_email,
            approved_by_email=record.approved_by_email,
            lines=[
                ShipmentLineModel(position=i, item_sku=ln.sku, description=ln.description, quantity=ln.quantity)
                for i, ln in enumerate(record.lines)
            ],
        )
        self.session.add(m)
        return _shipment_out(m)

    async def update_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        m = await self._load_shipment(record.id)
        if m is None:
            raise StoreConflict(f"shipment {record.id} disappeared during update")
        m.shipment_id = record.shipment_id
        m.type = record.type
        m.lines = [
            ShipmentLineModel(position=i, item_sku=ln.sku, description=ln.description, quantity=ln.quantity)
            for i, ln in enumerate(record.lines)
        ]
        m.updated_by_user_id = record.updated_by_user_id
        m.updated_by_email = record.updated_by_email
        m.updated_at = record.updated_at or utcnow()
        return _shipment_out(m)

    async def delete_shipment(self, shipment_pk: uuid.UUID) -> None:
        m = await self._load_shipment(shipment_pk)
        if m is None:
            raise StoreConflict(f"shipment {shipment_pk} disappeared during delete")
        await self.session.delete(m)

    async def _load_request(self, request_id: uuid.UUID) -> Optional[ShipmentRequestModel]:
        res = await self.session.execute(
            select(ShipmentRequestModel).where(ShipmentRequestModel.id == request_id).with_for_update()
        )
        return res.scalar_one_or_none()

    async def get_request(self, request_id: uuid.UUID) -> Optional[RequestRecord]:
        m = await self._load_request(request_id)
        return _request_out(m) if m else None

    async def insert_request(self, record: RequestRecord) -> RequestRecord:
        m = ShipmentRequestModel(
            id=uuid.uuid4(),
            shipment_id=record.shipment_id,
            type=record.type,
            status=record.status,
            requestor_id=record.requestor_id,
            requestor_email=record.requestor_email,
            requested_at=record.requested_at,
            lines=[
                ShipmentRequestLineModel(position=i, item_sku=ln.sku, description=ln.description, quantity=ln.quantity)
                for i, ln in enumerate(record.lines)
            ],
        )
        self.session.add(m)
        return _request_out(m)

    async def delete_request(self, request_id: uuid.UUID) -> None:
        m = await self._load_request(request_id)
        if m is None:
            raise StoreConflict(f"request {request_id} disappeared during delete")
        await self.session.delete(m)

    async def shipment_labels(self, include_requests: bool = True) -> list[LabelRecord]:
        out = [
            LabelRecord(id=row.id, shipment_id=row.shipment_id, kind="shipment", type=row.type)
            for row in (await self.session.execute(
                select(ShipmentModel.id, ShipmentModel.shipment_id, ShipmentModel.type)
            )).all()
        ]
        if include_requests:
            out.extend(
                LabelRecord(id=row.id, shipment_id=row.shipment_id, kind="request", type=row.type)
                for row in (await self.session.execute(
                    select(ShipmentRequestModel.id, ShipmentRequestModel.shipment_id, ShipmentRequestModel.type)
                    .where(ShipmentRequestModel.status == "pending")
                )).all()
            )
        return out


class SqlAlchemyStore(LedgerStore):
    """Ledger store backed by the SQLAlchemy async session factory."""

    def __init__(self, session_maker: async_sessionmaker, max_attempts: int = 5):
        self.session_maker = session_maker
        self.max_attempts = max(1, int(max_attempts))

    async def run_in_transaction(self, work: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session_maker() as session:
                    async with session.begin():
                        return await work(_SqlTransaction(session))
            except LedgerError:
                raise
            except Exception as e:
                if not _is_conflict(e):
                    if isinstance(e, SQLAlchemyError):
                        logger.exception("[ledger-store] transaction failed")
                        raise OperationFailed(e) from e
                    raise
                last_error = e
                logger.warning(
                    "[ledger-store] conflict on attempt %d/%d: %r", attempt, self.max_attempts, e
                )
        raise TransactionFailed(last_error, attempts=self.max_attempts)
