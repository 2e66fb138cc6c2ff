import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from ..database import Base, utcnow


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    inventory_item_id = Column(
        Uuid,
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku = Column(String, nullable=False, index=True)

    change = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)

    # 'shipment_apply' | 'shipment_edit' | 'shipment_delete' | 'request_approve' | 'admin_adjust' | 'seed'
    source_type = Column(Text, nullable=False, index=True)
    # Not a foreign key: movements outlive deleted shipments.
    shipment_id = Column(Uuid, nullable=True, index=True)
    shipment_label = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    inventory_item = relationship("InventoryItem", back_populates="movements")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "sku": self.sku,
            "change": int(self.change),
            "quantity_after": int(self.quantity_after),
            "source_type": self.source_type,
            "shipment_id": self.shipment_id,
            "shipment_label": self.shipment_label,
            "created_at": self.created_at,
            "created_by_user_id": self.created_by_user_id,
        }
