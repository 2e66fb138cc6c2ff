from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


ShipmentType = Literal["incoming", "outgoing"]


class ShipmentLineIn(BaseModel):
    sku: str
    description: Optional[str] = ""
    quantity: int = Field(gt=0)

    @field_validator("sku")
    @classmethod
    def _strip_sku(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("sku is required")
        return v

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class ShipmentLineRead(BaseModel):
    sku: str
    description: str = ""
    quantity: int


class ShipmentCreate(BaseModel):
    shipment_id: str
    type: ShipmentType
    lines: list[ShipmentLineIn]
    # Set after the user has seen and accepted the duplicate-label warning.
    confirm_duplicate: bool = False

    @field_validator("shipment_id")
    @classmethod
    def _strip_label(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("shipment_id is required")
        return v

    @field_validator("lines")
    @classmethod
    def _lines_not_empty(cls, v: list[ShipmentLineIn]) -> list[ShipmentLineIn]:
        if not v:
            raise ValueError("a shipment needs at least one line")
        return v


class ShipmentUpdate(BaseModel):
    shipment_id: Optional[str] = None
    type: Optional[ShipmentType] = None
    lines: Optional[list[ShipmentLineIn]] = None

    @field_validator("shipment_id")
    @classmethod
    def _strip_label(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("shipment_id cannot be empty")
        return v

    @field_validator("lines")
    @classmethod
    def _lines_not_empty(cls, v: Optional[list[ShipmentLineIn]]) -> Optional[list[ShipmentLineIn]]:
        if v is not None and not v:
            raise ValueError("an edited shipment needs at least one line; delete it instead")
        return v


class ShipmentRead(BaseModel):
    id: UUID
    shipment_id: str
    type: ShipmentType
    lines: list[ShipmentLineRead]
    timestamp: datetime
    submitted_by_user_id: Optional[UUID] = None
    submitted_by_email: str
    approved_by_email: Optional[str] = None
    updated_by_user_id: Optional[UUID] = None
    updated_by_email: Optional[str] = None
    updated_at: Optional[datetime] = None
    is_duplicate_label: bool = False


class RequestRead(BaseModel):
    id: UUID
    shipment_id: str
    type: ShipmentType
    status: str
    lines: list[ShipmentLineRead]
    requestor_id: Optional[UUID] = None
    requestor_email: str
    requested_at: datetime


class SubmitResult(BaseModel):
    outcome: Literal["applied", "requested"]
    shipment: Optional[ShipmentRead] = None
    request: Optional[RequestRead] = None


class DuplicateMatch(BaseModel):
    id: UUID
    shipment_id: str
    kind: Literal["shipment", "request"]
    type: str


class DuplicateCheck(BaseModel):
    shipment_id: str
    is_duplicate: bool
    matches: list[DuplicateMatch]


class ScanLine(BaseModel):
    sku: str
    description: str
    quantity: int
    matched_sku: Optional[str] = None
    matched_description: Optional[str] = None
    score: float = 0.0


class ScanResult(BaseModel):
    shipment_id: str = ""
    lines: list[ScanLine]
    raw_text: str = ""
