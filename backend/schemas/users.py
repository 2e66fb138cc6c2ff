# Pydantic schemas for user-related requests/responses.
# fastapi-users provides the base schemas; role/status are read-only here and
# only change through the admin access endpoint.

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from fastapi_users import schemas
from pydantic import BaseModel, EmailStr


RoleName = Literal["admin", "editor", "submitter", "viewer"]
StatusName = Literal["pending", "approved", "rejected"]


class UserRead(schemas.BaseUser[UUID]):
    role: RoleName = "submitter"
    status: StatusName = "pending"


class UserCreate(schemas.BaseUserCreate):
    pass


class UserUpdate(schemas.BaseUserUpdate):
    pass


class UserAdminRead(BaseModel):
    id: UUID
    email: EmailStr
    role: RoleName
    status: StatusName
    is_active: bool
    created_at: Optional[datetime] = None


class UserAccessUpdate(BaseModel):
    role: Optional[RoleName] = None
    status: Optional[StatusName] = None
