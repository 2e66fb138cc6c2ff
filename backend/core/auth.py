import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi_users import BaseUserManager, FastAPIUsers, UUIDIDMixin
from fastapi_users.authentication import AuthenticationBackend, BearerTransport, JWTStrategy
from fastapi_users.db import SQLAlchemyUserDatabase
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.roles import AccountStatus, Actor, Capability, Role
from db.database import User, get_async_session

logger = logging.getLogger(__name__)

SECRET = settings.jwt_secret


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    yield SQLAlchemyUserDatabase(session, User)


class UserManager(UUIDIDMixin, BaseUserManager[User, uuid.UUID]):
    reset_password_token_secret = SECRET
    verification_token_secret = SECRET

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        # The very first account bootstraps the tenant as an approved admin.
        session = self.user_db.session
        count = (await session.execute(select(func.count()).select_from(User))).scalar_one()
        if count == 1:
            await self.user_db.update(
                user,
                {
                    "role": Role.ADMIN.value,
                    "status": AccountStatus.APPROVED.value,
                    "is_superuser": True,
                },
            )
            logger.info("First account %s registered as admin", user.email)
        else:
            logger.info("Account %s registered, pending approval", user.email)

    async def on_after_forgot_password(self, user: User, token: str, request: Optional[Request] = None):
        logger.info("Password reset requested for %s", user.email)

    async def on_after_request_verify(self, user: User, token: str, request: Optional[Request] = None):
        logger.info("Verification requested for %s", user.email)


async def get_user_manager(user_db: SQLAlchemyUserDatabase = Depends(get_user_db)):
    yield UserManager(user_db)


bearer_transport = BearerTransport(tokenUrl="auth/jwt/login")


def get_jwt_strategy() -> JWTStrategy:
    return JWTStrategy(secret=SECRET, lifetime_seconds=settings.jwt_lifetime_seconds)


auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, uuid.UUID](get_user_manager, [auth_backend])

current_active_user = fastapi_users.current_user(active=True)


def actor_for(user: User) -> Actor:
    try:
        role = Role(user.role)
    except ValueError:
        role = Role.VIEWER
    return Actor(user_id=user.id, email=user.email, role=role)


async def current_approved_user(user: User = Depends(current_active_user)) -> User:
    if user.status != AccountStatus.APPROVED.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account is {user.status}; an admin must approve it first",
        )
    return user


async def current_actor(user: User = Depends(current_approved_user)) -> Actor:
    return actor_for(user)


def require_capability(capability: Capability):
    """Dependency factory: the approved caller's Actor, or 403 if its role lacks `capability`."""

    async def dependency(actor: Actor = Depends(current_actor)) -> Actor:
        actor.require(capability)
        return actor

    return dependency
