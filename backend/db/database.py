from collections.abc import AsyncGenerator
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings

DATABASE_URL = settings.database_url


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


engine = create_async_engine(DATABASE_URL, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


# Register every mapped class on Base.metadata and re-export them for callers
# that import models from here.
from .users import User  # noqa: E402,F401
from .inventory.item import InventoryItem  # noqa: E402,F401
from .inventory.movement import InventoryMovement  # noqa: E402,F401
from .shipment import Shipment, ShipmentLine  # noqa: E402,F401
from .shipment_request import ShipmentRequest, ShipmentRequestLine  # noqa: E402,F401
