"""
Storage adapter contract for the shipment ledger.

The ledger never talks to a database directly. It hands a unit of work to
`LedgerStore.run_in_transaction`, which runs it against a `LedgerTransaction`
and commits every write together or none of them. Conflicting concurrent
writers are retried by the store; the ledger itself has no retry loop.
"""

from __future__ import annotations

import abc
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class LineData:
    sku: str
    description: str
    quantity: int


@dataclass(frozen=True)
class StockLevel:
    sku: str
    description: str
    quantity_on_hand: int


@dataclass
class ShipmentRecord:
    shipment_id: str
    type: str
    lines: list[LineData]
    timestamp: datetime
    submitted_by_user_id: Optional[uuid.UUID]
    submitted_by_email: str
    approved_by_email: Optional[str] = None
    updated_by_user_id: Optional[uuid.UUID] = None
    updated_by_email: Optional[str] = None
    updated_at: Optional[datetime] = None
    id: Optional[uuid.UUID] = None


@dataclass
class RequestRecord:
    shipment_id: str
    type: str
    lines: list[LineData]
    requestor_id: Optional[uuid.UUID]
    requestor_email: str
    requested_at: datetime
    status: str = "pending"
    id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class MovementRecord:
    sku: str
    change: int
    quantity_after: int
    source_type: str
    shipment_id: Optional[uuid.UUID] = None
    shipment_label: Optional[str] = None
    created_by_user_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class LabelRecord:
    """A shipment label as stored on a shipment ('shipment') or pending request ('request')."""

    id: uuid.UUID
    shipment_id: str
    kind: str
    type: str = field(default="")


class StoreConflict(Exception):
    """Raised inside a store when a commit lost an optimistic-concurrency race."""


class LedgerTransaction(abc.ABC):
    """Read-then-conditional-write view of the store inside one transaction."""

    @abc.abstractmethod
    async def lock_items(self, skus: Iterable[str]) -> dict[str, StockLevel]:
        """Read the current stock of `skus` for update. Unknown SKUs are absent from the result."""

    @abc.abstractmethod
    async def set_quantity(self, sku: str, quantity: int) -> None:
        ...

    @abc.abstractmethod
    async def record_movement(self, movement: MovementRecord) -> None:
        ...

    @abc.abstractmethod
    async def get_shipment(self, shipment_pk: uuid.UUID) -> Optional[ShipmentRecord]:
        ...

    @abc.abstractmethod
    async def insert_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        """Persist a new shipment; the store assigns `id`."""

    @abc.abstractmethod
    async def update_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        ...

    @abc.abstractmethod
    async def delete_shipment(self, shipment_pk: uuid.UUID) -> None:
        ...

    @abc.abstractmethod
    async def get_request(self, request_id: uuid.UUID) -> Optional[RequestRecord]:
        ...

    @abc.abstractmethod
    async def insert_request(self, record: RequestRecord) -> RequestRecord:
        ...

    @abc.abstractmethod
    async def delete_request(self, request_id: uuid.UUID) -> None:
        ...

    @abc.abstractmethod
    async def shipment_labels(self, include_requests: bool = True) -> list[LabelRecord]:
        ...


class LedgerStore(abc.ABC):
    max_attempts: int = 5

    @abc.abstractmethod
    async def run_in_transaction(self, work: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        """
        Run `work` atomically and return its result.

        - LedgerError raised by `work` aborts the transaction and propagates unchanged.
        - Optimistic conflicts are retried up to `max_attempts`, then TransactionFailed.
        - Any other store failure aborts with OperationFailed.
        """
