from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


MovementSource = Literal[
    "shipment_apply",
    "shipment_edit",
    "shipment_delete",
    "request_approve",
    "admin_adjust",
    "seed",
]


class InventoryItemRead(BaseModel):
    id: UUID
    sku: str
    description: str
    category: Optional[str] = None
    location: Optional[str] = None
    uom: str = "ea"
    quantity_on_hand: int
    min_quantity: Optional[int] = None
    unit_cost: Optional[float] = None
    sell_price: Optional[float] = None
    external_id: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InventoryItemCreate(BaseModel):
    sku: str
    description: str
    category: Optional[str] = None
    location: Optional[str] = None
    uom: str = "ea"
    quantity_on_hand: int = Field(default=0, ge=0)
    min_quantity: Optional[int] = Field(default=None, ge=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    sell_price: Optional[float] = Field(default=None, ge=0)
    external_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("sku", "description")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("category", "location", "external_id", "notes")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("uom", mode="before")
    @classmethod
    def _default_uom(cls, v: Optional[str]) -> str:
        return (v or "").strip() or "ea"


class InventoryItemUpdate(BaseModel):
    """Direct admin edit. Bypasses the shipment ledger."""

    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    uom: Optional[str] = None
    quantity_on_hand: Optional[int] = Field(default=None, ge=0)
    min_quantity: Optional[int] = Field(default=None, ge=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    sell_price: Optional[float] = Field(default=None, ge=0)
    external_id: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("description", "uom")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = (v or "").strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class InventoryBulkUpsert(BaseModel):
    items: list[InventoryItemCreate]

    @field_validator("items")
    @classmethod
    def _not_empty(cls, v: list[InventoryItemCreate]) -> list[InventoryItemCreate]:
        if not v:
            raise ValueError("items cannot be empty")
        return v


class InventoryBulkResult(BaseModel):
    created: int
    updated: int


class InventoryMovementRead(BaseModel):
    id: UUID
    sku: str
    change: int
    quantity_after: int
    source_type: str
    shipment_id: Optional[UUID] = None
    shipment_label: Optional[str] = None
    created_at: datetime
    created_by_user_id: Optional[UUID] = None
