import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class Shipment(Base):
    """An applied incoming/outgoing shipment. Its lines are the audit record of the inventory effect."""
    __tablename__ = "shipments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # User-supplied label; duplicates are allowed.
    shipment_id = Column(String, nullable=False, index=True)
    # 'incoming' | 'outgoing'
    type = Column(Text, nullable=False, index=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    submitted_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    submitted_by_email = Column(String, nullable=False)
    approved_by_email = Column(String, nullable=True)

    updated_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_email = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    lines = relationship(
        "ShipmentLine",
        back_populates="shipment",
        cascade="all, delete-orphan",
        order_by="ShipmentLine.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "shipment_id": self.shipment_id,
            "type": self.type,
            "lines": [ln.to_schema for ln in self.lines],
            "timestamp": self.timestamp,
            "submitted_by_user_id": self.submitted_by_user_id,
            "submitted_by_email": self.submitted_by_email,
            "approved_by_email": self.approved_by_email,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_by_email": self.updated_by_email,
            "updated_at": self.updated_at,
        }


class ShipmentLine(Base):
    __tablename__ = "shipment_lines"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_pk = Column(Uuid, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    item_sku = Column(String, nullable=False, index=True)
    description = Column(String, nullable=False, default="")
    quantity = Column(Integer, nullable=False)

    shipment = relationship("Shipment", back_populates="lines")

    @property
    def to_schema(self):
        return {
            "sku": self.item_sku,
            "description": self.description,
            "quantity": int(self.quantity),
        }
