import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class ShipmentRequest(Base):
    """A shipment submitted by a user without direct-apply rights. Never touches inventory."""
    __tablename__ = "shipment_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_id = Column(String, nullable=False, index=True)
    type = Column(Text, nullable=False)
    # 'pending' | 'approved' | 'rejected'
    status = Column(Text, nullable=False, default="pending", index=True)

    requestor_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    requestor_email = Column(String, nullable=False)
    requested_at = Column(DateTime(timezone=True), nullable=False, index=True)

    version = Column(Integer, nullable=False, default=1)

    lines = relationship(
        "ShipmentRequestLine",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ShipmentRequestLine.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "shipment_id": self.shipment_id,
            "type": self.type,
            "status": self.status,
            "lines": [ln.to_schema for ln in self.lines],
            "requestor_id": self.requestor_id,
            "requestor_email": self.requestor_email,
            "requested_at": self.requested_at,
        }


class ShipmentRequestLine(Base):
    __tablename__ = "shipment_request_lines"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid, ForeignKey("shipment_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    item_sku = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    quantity = Column(Integer, nullable=False)

    request = relationship("ShipmentRequest", back_populates="lines")

    @property
    def to_schema(self):
        return {
            "sku": self.item_sku,
            "description": self.description,
            "quantity": int(self.quantity),
        }
