"""
Shipment ledger.

The only code that changes `quantity_on_hand` in response to shipments. Every
operation runs as one store transaction: stock is read, every affected SKU is
validated, and only then are quantities, movements and the shipment/request
records written. A failure at any point leaves the store exactly as it was.

Edits never reverse-then-reapply. They compute a per-SKU net delta between
the old and new effect of the shipment and apply only the difference, so
reducing a quantity cannot be rejected for stock that the shipment itself put
there.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from core.errors import (
    InsufficientStock,
    PermissionDenied,
    RequestNotFound,
    ShipmentNotFound,
    UnknownItem,
    ValidationError,
)
from core.roles import Actor, Capability, Role
from core.stores.base import (
    LabelRecord,
    LedgerStore,
    LedgerTransaction,
    LineData,
    MovementRecord,
    RequestRecord,
    ShipmentRecord,
    StockLevel,
)
from db.database import utcnow

logger = logging.getLogger(__name__)

INCOMING = "incoming"
OUTGOING = "outgoing"
SHIPMENT_TYPES = (INCOMING, OUTGOING)

# inventory_movements.source_type
SOURCE_APPLY = "shipment_apply"
SOURCE_EDIT = "shipment_edit"
SOURCE_DELETE = "shipment_delete"
SOURCE_APPROVE = "request_approve"
SOURCE_ADMIN = "admin_adjust"
SOURCE_SEED = "seed"


@dataclass
class ShipmentDraft:
    """A shipment as entered by a user, before it is applied or queued."""

    shipment_id: str
    type: str
    lines: list


@dataclass
class SubmitOutcome:
    outcome: str  # 'applied' | 'requested'
    shipment: Optional[ShipmentRecord] = None
    request: Optional[RequestRecord] = None


# ---------------------------------------------------------------------------
# Input normalisation
# ---------------------------------------------------------------------------

def _field(line: Any, name: str, default=None):
    if isinstance(line, Mapping):
        return line.get(name, default)
    return getattr(line, name, default)


def normalize_label(shipment_id: Optional[str]) -> str:
    label = str(shipment_id).strip() if shipment_id is not None else ""
    if not label:
        raise ValidationError("Shipment ID is required")
    return label


def normalize_type(shipment_type: Optional[str]) -> str:
    t = (shipment_type or "").strip().lower()
    if t not in SHIPMENT_TYPES:
        raise ValidationError(f"Shipment type must be one of {', '.join(SHIPMENT_TYPES)}")
    return t


def normalize_lines(lines: Optional[Iterable[Any]]) -> list[LineData]:
    """Validate shipment lines (LineData, mappings or objects with sku/description/quantity)."""
    out: list[LineData] = []
    for idx, line in enumerate(lines or [], start=1):
        sku = _field(line, "sku")
        if sku is None:
            sku = _field(line, "item_sku")
        sku = (sku or "").strip() if isinstance(sku, str) else ""
        if not sku:
            raise ValidationError(f"Line {idx}: SKU is required")

        qty = _field(line, "quantity")
        if isinstance(qty, bool) or not isinstance(qty, int):
            raise ValidationError(f"Line {idx} ({sku}): quantity must be a whole number")
        if qty <= 0:
            raise ValidationError(f"Line {idx} ({sku}): quantity must be greater than 0")

        description = _field(line, "description") or ""
        out.append(LineData(sku=sku, description=str(description).strip(), quantity=qty))

    if not out:
        raise ValidationError("A shipment needs at least one line")
    return out


def normalize_draft(draft: ShipmentDraft) -> ShipmentDraft:
    return ShipmentDraft(
        shipment_id=normalize_label(draft.shipment_id),
        type=normalize_type(draft.type),
        lines=normalize_lines(draft.lines),
    )


# ---------------------------------------------------------------------------
# Delta arithmetic
# ---------------------------------------------------------------------------

def line_effects(shipment_type: str, lines: Iterable[LineData]) -> dict[str, int]:
    """Signed inventory effect per SKU: +qty for incoming, -qty for outgoing."""
    sign = 1 if shipment_type == INCOMING else -1
    effects: dict[str, int] = defaultdict(int)
    for ln in lines:
        effects[ln.sku] += sign * int(ln.quantity)
    return dict(effects)


def net_deltas(
    old_type: str,
    old_lines: Iterable[LineData],
    new_type: str,
    new_lines: Iterable[LineData],
) -> dict[str, int]:
    """newEffect - oldEffect over the union of SKUs, dropping SKUs that do not change."""
    old = line_effects(old_type, old_lines)
    new = line_effects(new_type, new_lines)
    deltas = {}
    for sku in sorted(set(old) | set(new)):
        delta = new.get(sku, 0) - old.get(sku, 0)
        if delta:
            deltas[sku] = delta
    return deltas


def reversal_deltas(shipment_type: str, lines: Iterable[LineData]) -> dict[str, int]:
    return {sku: -effect for sku, effect in line_effects(shipment_type, lines).items() if effect}


def labels_match(a: str, b: str) -> bool:
    return (a or "").strip().casefold() == (b or "").strip().casefold()


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class ShipmentLedger:
    def __init__(self, store: LedgerStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    # -- shared transaction steps -------------------------------------------

    @staticmethod
    async def _check_deltas(tx: LedgerTransaction, deltas: Mapping[str, int]) -> dict[str, StockLevel]:
        """Read every SKU in `deltas` and fail before any write if one is unknown or would go negative."""
        if not deltas:
            return {}
        levels = await tx.lock_items(deltas.keys())
        for sku in deltas:
            if sku not in levels:
                raise UnknownItem(sku)
        for sku, delta in deltas.items():
            available = levels[sku].quantity_on_hand
            if available + delta < 0:
                raise InsufficientStock(sku, available, -delta)
        return levels

    @staticmethod
    async def _write_deltas(
        tx: LedgerTransaction,
        deltas: Mapping[str, int],
        levels: Mapping[str, StockLevel],
        *,
        source_type: str,
        shipment: Optional[ShipmentRecord],
        actor: Actor,
    ) -> None:
        for sku, delta in deltas.items():
            after = levels[sku].quantity_on_hand + delta
            await tx.set_quantity(sku, after)
            await tx.record_movement(
                MovementRecord(
                    sku=sku,
                    change=delta,
                    quantity_after=after,
                    source_type=source_type,
                    shipment_id=shipment.id if shipment else None,
                    shipment_label=shipment.shipment_id if shipment else None,
                    created_by_user_id=actor.user_id,
                )
            )

    # -- operations ----------------------------------------------------------

    async def apply_shipment(self, draft: ShipmentDraft, actor: Actor) -> ShipmentRecord:
        actor.require(Capability.APPLY_SHIPMENT)
        draft = normalize_draft(draft)
        deltas = line_effects(draft.type, draft.lines)

        async def work(tx: LedgerTransaction) -> ShipmentRecord:
            levels = await self._check_deltas(tx, deltas)
            record = await tx.insert_shipment(
                ShipmentRecord(
                    shipment_id=draft.shipment_id,
                    type=draft.type,
                    lines=draft.lines,
                    timestamp=self.clock(),
                    submitted_by_user_id=actor.user_id,
                    submitted_by_email=actor.email,
                )
            )
            await self._write_deltas(tx, deltas, levels, source_type=SOURCE_APPLY, shipment=record, actor=actor)
            return record

        try:
            record = await self.store.run_in_transaction(work)
        except (UnknownItem, InsufficientStock) as e:
            logger.warning("[ledger] apply %s rejected: %s", draft.shipment_id, e)
            raise
        logger.info(
            "[ledger] applied %s shipment %s (%s) by %s: %s",
            record.type, record.shipment_id, record.id, actor.email, deltas,
        )
        return record

    async def delete_shipment(self, shipment_pk: uuid.UUID, actor: Actor) -> ShipmentRecord:
        """Reverse the exact recorded effect of a shipment, then remove it."""
        actor.require(Capability.MODIFY_SHIPMENT)

        async def work(tx: LedgerTransaction):
            record = await tx.get_shipment(shipment_pk)
            if record is None:
                raise ShipmentNotFound(shipment_pk)
            deltas = reversal_deltas(record.type, record.lines)
            levels = await self._check_deltas(tx, deltas)
            await self._write_deltas(tx, deltas, levels, source_type=SOURCE_DELETE, shipment=record, actor=actor)
            await tx.delete_shipment(shipment_pk)
            return record, deltas

        try:
            record, deltas = await self.store.run_in_transaction(work)
        except (UnknownItem, InsufficientStock) as e:
            logger.warning("[ledger] delete %s rejected: %s", shipment_pk, e)
            raise
        logger.info("[ledger] deleted shipment %s (%s) by %s: %s", record.shipment_id, record.id, actor.email, deltas)
        return record

    async def edit_shipment(
        self,
        shipment_pk: uuid.UUID,
        actor: Actor,
        *,
        lines: Optional[Iterable[Any]] = None,
        shipment_id: Optional[str] = None,
        type: Optional[str] = None,
    ) -> ShipmentRecord:
        """
        Replace the lines, label and/or type of an applied shipment.

        Omitted fields keep their current value. Only the per-SKU net delta
        between the old and new effect touches inventory; the original
        timestamp and submitter are kept.
        """
        actor.require(Capability.MODIFY_SHIPMENT)
        new_lines = normalize_lines(lines) if lines is not None else None
        new_label = normalize_label(shipment_id) if shipment_id is not None else None
        new_type = normalize_type(type) if type is not None else None

        async def work(tx: LedgerTransaction):
            original = await tx.get_shipment(shipment_pk)
            if original is None:
                raise ShipmentNotFound(shipment_pk)
            updated = replace(
                original,
                shipment_id=new_label or original.shipment_id,
                type=new_type or original.type,
                lines=new_lines if new_lines is not None else list(original.lines),
                updated_by_user_id=actor.user_id,
                updated_by_email=actor.email,
                updated_at=self.clock(),
            )
            deltas = net_deltas(original.type, original.lines, updated.type, updated.lines)
            levels = await self._check_deltas(tx, deltas)
            await self._write_deltas(tx, deltas, levels, source_type=SOURCE_EDIT, shipment=updated, actor=actor)
            return await tx.update_shipment(updated), deltas

        try:
            record, deltas = await self.store.run_in_transaction(work)
        except (UnknownItem, InsufficientStock) as e:
            logger.warning("[ledger] edit %s rejected: %s", shipment_pk, e)
            raise
        logger.info("[ledger] edited shipment %s (%s) by %s: %s", record.shipment_id, record.id, actor.email, deltas)
        return record

    async def submit_request(self, draft: ShipmentDraft, actor: Actor) -> RequestRecord:
        actor.require(Capability.SUBMIT_REQUEST)
        draft = normalize_draft(draft)

        async def work(tx: LedgerTransaction) -> RequestRecord:
            return await tx.insert_request(
                RequestRecord(
                    shipment_id=draft.shipment_id,
                    type=draft.type,
                    lines=draft.lines,
                    requestor_id=actor.user_id,
                    requestor_email=actor.email,
                    requested_at=self.clock(),
                )
            )

        request = await self.store.run_in_transaction(work)
        logger.info("[ledger] request %s (%s) submitted by %s", request.shipment_id, request.id, actor.email)
        return request

    async def submit_or_apply(self, draft: ShipmentDraft, actor: Actor) -> SubmitOutcome:
        """Apply directly when the actor may, otherwise queue a request for review."""
        if actor.can(Capability.APPLY_SHIPMENT):
            return SubmitOutcome(outcome="applied", shipment=await self.apply_shipment(draft, actor))
        if actor.can(Capability.SUBMIT_REQUEST):
            return SubmitOutcome(outcome="requested", request=await self.submit_request(draft, actor))
        raise PermissionDenied(Role(actor.role).value, Capability.SUBMIT_REQUEST.value)

    async def approve_request(self, request_id: uuid.UUID, approver: Actor) -> ShipmentRecord:
        """Apply a pending request as its requestor, tag the approver, and consume the request."""
        approver.require(Capability.REVIEW_REQUEST)

        async def work(tx: LedgerTransaction) -> ShipmentRecord:
            request = await tx.get_request(request_id)
            if request is None or request.status != "pending":
                raise RequestNotFound(request_id)
            deltas = line_effects(request.type, request.lines)
            levels = await self._check_deltas(tx, deltas)
            record = await tx.insert_shipment(
                ShipmentRecord(
                    shipment_id=request.shipment_id,
                    type=request.type,
                    lines=list(request.lines),
                    timestamp=self.clock(),
                    submitted_by_user_id=request.requestor_id,
                    submitted_by_email=request.requestor_email,
                    approved_by_email=approver.email,
                )
            )
            await self._write_deltas(tx, deltas, levels, source_type=SOURCE_APPROVE, shipment=record, actor=approver)
            await tx.delete_request(request_id)
            return record

        try:
            record = await self.store.run_in_transaction(work)
        except (UnknownItem, InsufficientStock) as e:
            logger.warning("[ledger] approve %s rejected: %s", request_id, e)
            raise
        logger.info(
            "[ledger] request %s approved by %s as shipment %s", request_id, approver.email, record.id
        )
        return record

    async def reject_request(self, request_id: uuid.UUID, actor: Actor) -> RequestRecord:
        actor.require(Capability.REVIEW_REQUEST)

        async def work(tx: LedgerTransaction) -> RequestRecord:
            request = await tx.get_request(request_id)
            if request is None or request.status != "pending":
                raise RequestNotFound(request_id)
            await tx.delete_request(request_id)
            return request

        request = await self.store.run_in_transaction(work)
        logger.info("[ledger] request %s rejected by %s", request_id, actor.email)
        return request

    async def find_duplicates(
        self,
        shipment_id: str,
        *,
        include_requests: bool = True,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> list[LabelRecord]:
        """Shipments (and pending requests) already using this label, case-insensitively. Advisory only."""
        label = (shipment_id or "").strip()
        if not label:
            return []

        async def work(tx: LedgerTransaction) -> list[LabelRecord]:
            return await tx.shipment_labels(include_requests=include_requests)

        labels = await self.store.run_in_transaction(work)
        return [
            rec for rec in labels
            if labels_match(rec.shipment_id, label) and (exclude_id is None or rec.id != exclude_id)
        ]
