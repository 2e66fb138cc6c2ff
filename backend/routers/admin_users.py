import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_capability
from core.roles import Actor, Capability, Role
from db.database import get_async_session, User
from schemas.users import UserAccessUpdate, UserAdminRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[UserAdminRead])
async def list_users(
    actor: Actor = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(select(User).order_by(User.created_at.desc()))
    return [UserAdminRead(**u.to_schema) for u in res.scalars().all()]


@router.patch("/{user_id}", response_model=UserAdminRead)
async def update_user_access(
    user_id: UUID,
    payload: UserAccessUpdate,
    actor: Actor = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_async_session),
):
    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.id == actor.user_id and payload.role is not None and payload.role != Role.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot demote themselves")

    if payload.role is not None:
        user.role = payload.role
        user.is_superuser = payload.role == Role.ADMIN.value
    if payload.status is not None:
        user.status = payload.status

    await db.commit()
    logger.info("[users] %s set %s to role=%s status=%s", actor.email, user.email, user.role, user.status)
    return UserAdminRead(**user.to_schema)
