import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from ..database import Base, utcnow


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sku = Column(String, nullable=False, unique=True, index=True)
    description = Column(String, nullable=False)

    category = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    uom = Column(Text, nullable=False, default="ea")

    quantity_on_hand = Column(Integer, nullable=False, default=0)
    min_quantity = Column(Integer, nullable=True)

    unit_cost = Column(Numeric(12, 2), nullable=True)
    sell_price = Column(Numeric(12, 2), nullable=True)
    external_id = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Optimistic concurrency: UPDATEs match on the version that was read.
    version = Column(Integer, nullable=False, default=1)

    movements = relationship("InventoryMovement", back_populates="inventory_item", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "sku": self.sku,
            "description": self.description,
            "category": self.category,
            "location": self.location,
            "uom": self.uom,
            "quantity_on_hand": int(self.quantity_on_hand or 0),
            "min_quantity": self.min_quantity,
            "unit_cost": float(self.unit_cost) if self.unit_cost is not None else None,
            "sell_price": float(self.sell_price) if self.sell_price is not None else None,
            "external_id": self.external_id,
            "notes": self.notes,
            "is_active": bool(self.is_active),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
