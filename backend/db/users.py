from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import Column, DateTime, Text
from .database import Base, utcnow


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    # 'admin' | 'editor' | 'submitter' | 'viewer'
    role = Column(Text, nullable=False, default="submitter", server_default="submitter")
    # 'pending' | 'approved' | 'rejected'
    status = Column(Text, nullable=False, default="pending", server_default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def to_schema(self):
        """Convert User model to schema dictionary format"""
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }
