"""
In-process ledger store.

Each record carries a version. A transaction remembers the version of every
record it read and buffers its writes; commit checks those versions under a
lock and raises StoreConflict when another transaction got there first, which
makes `run_in_transaction` start the work over.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Callable, Hashable, Iterable, Optional, TypeVar

from core.errors import LedgerError, TransactionFailed
from core.stores.base import (
    LabelRecord,
    LedgerStore,
    LedgerTransaction,
    MovementRecord,
    RequestRecord,
    ShipmentRecord,
    StockLevel,
    StoreConflict,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DELETED = object()


def _copy(value):
    if isinstance(value, (ShipmentRecord, RequestRecord)):
        return replace(value, lines=list(value.lines))
    return value


class _MemoryTransaction(LedgerTransaction):
    def __init__(self, store: "MemoryStore"):
        self.store = store
        self.reads: dict[Hashable, Optional[int]] = {}
        self.writes: dict[Hashable, Any] = {}
        self.movements: list[MovementRecord] = []

    def _read(self, key: Hashable):
        if key in self.writes:
            value = self.writes[key]
            return None if value is _DELETED else _copy(value)
        version, value = self.store._data.get(key, (None, None))
        self.reads.setdefault(key, version)
        return _copy(value)

    def _write(self, key: Hashable, value) -> None:
        if key not in self.reads and key not in self.writes:
            self.reads[key] = self.store._data.get(key, (None, None))[0]
        self.writes[key] = value

    async def lock_items(self, skus: Iterable[str]) -> dict[str, StockLevel]:
        out = {}
        for sku in sorted(set(skus)):
            level = self._read(("item", sku))
            if level is not None:
                out[sku] = level
        # Yield so concurrent transactions interleave between read and commit.
        await asyncio.sleep(0)
        return out

    async def set_quantity(self, sku: str, quantity: int) -> None:
        level = self._read(("item", sku))
        if level is None:
            raise RuntimeError(f"set_quantity({sku!r}) on unknown item")
        self._write(("item", sku), replace(level, quantity_on_hand=int(quantity)))

    async def record_movement(self, movement: MovementRecord) -> None:
        self.movements.append(movement)

    async def get_shipment(self, shipment_pk: uuid.UUID) -> Optional[ShipmentRecord]:
        return self._read(("shipment", shipment_pk))

    async def insert_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        record = replace(record, id=uuid.uuid4(), lines=list(record.lines))
        self._write(("shipment", record.id), record)
        return _copy(record)

    async def update_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        if self._read(("shipment", record.id)) is None:
            raise StoreConflict(f"shipment {record.id} disappeared during update")
        self._write(("shipment", record.id), _copy(record))
        return _copy(record)

    async def delete_shipment(self, shipment_pk: uuid.UUID) -> None:
        if self._read(("shipment", shipment_pk)) is None:
            raise StoreConflict(f"shipment {shipment_pk} disappeared during delete")
        self._write(("shipment", shipment_pk), _DELETED)

    async def get_request(self, request_id: uuid.UUID) -> Optional[RequestRecord]:
        return self._read(("request", request_id))

    async def insert_request(self, record: RequestRecord) -> RequestRecord:
        record = replace(record, id=uuid.uuid4(), lines=list(record.lines))
        self._write(("request", record.id), record)
        return _copy(record)

    async def delete_request(self, request_id: uuid.UUID) -> None:
        if self._read(("request", request_id)) is None:
            raise StoreConflict(f"request {request_id} disappeared during delete")
        self._write(("request", request_id), _DELETED)

    async def shipment_labels(self, include_requests: bool = True) -> list[LabelRecord]:
        out = []
        for (kind, key), (_, value) in list(self.store._data.items()):
            if kind == "shipment":
                out.append(LabelRecord(id=key, shipment_id=value.shipment_id, kind="shipment", type=value.type))
            elif kind == "request" and include_requests and value.status == "pending":
                out.append(LabelRecord(id=key, shipment_id=value.shipment_id, kind="request", type=value.type))
        return out


class MemoryStore(LedgerStore):
    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max(1, int(max_attempts))
        self._data: dict[Hashable, tuple[int, Any]] = {}
        self._movements: list[MovementRecord] = []
        self._lock = asyncio.Lock()

    # -- seeding and inspection --------------------------------------------

    def add_item(self, sku: str, description: str = "", quantity: int = 0) -> None:
        if quantity < 0:
            raise ValueError("quantity must be >= 0")
        key = ("item", sku)
        version = self._data.get(key, (0, None))[0] or 0
        self._data[key] = (version + 1, StockLevel(sku=sku, description=description, quantity_on_hand=int(quantity)))

    def quantity(self, sku: str) -> int:
        return self._data[("item", sku)][1].quantity_on_hand

    def items(self) -> dict[str, StockLevel]:
        return {key[1]: value for key, (_, value) in self._data.items() if key[0] == "item"}

    def shipments(self) -> list[ShipmentRecord]:
        return [_copy(v) for k, (_, v) in self._data.items() if k[0] == "shipment"]

    def requests(self) -> list[RequestRecord]:
        return [_copy(v) for k, (_, v) in self._data.items() if k[0] == "request"]

    @property
    def movements(self) -> list[MovementRecord]:
        return list(self._movements)

    # -- transactions ------------------------------------------------------

    async def _commit(self, tx: _MemoryTransaction) -> None:
        async with self._lock:
            for key, seen in tx.reads.items():
                current = self._data.get(key, (None, None))[0]
                if current != seen:
                    raise StoreConflict(f"{key} changed (read v{seen}, now v{current})")
            for key, value in tx.writes.items():
                if value is _DELETED:
                    self._data.pop(key, None)
                    continue
                version = self._data.get(key, (0, None))[0] or 0
                self._data[key] = (version + 1, value)
            self._movements.extend(tx.movements)

    async def run_in_transaction(self, work: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            tx = _MemoryTransaction(self)
            try:
                result = await work(tx)
                await self._commit(tx)
                return result
            except LedgerError:
                raise
            except StoreConflict as e:
                last_error = e
                logger.warning("[memory-store] conflict on attempt %d/%d: %s", attempt, self.max_attempts, e)
        raise TransactionFailed(last_error, attempts=self.max_attempts)
