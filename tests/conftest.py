# tests/conftest.py
from __future__ import annotations

import os
import uuid
from typing import AsyncGenerator

# Settings are read at import time; point them at SQLite before the app loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from main import app  # noqa: E402
from core.auth import current_active_user  # noqa: E402
from core.dependencies import get_ledger  # noqa: E402
from core.ledger import ShipmentLedger  # noqa: E402
from core.ocr import get_ocr_reader  # noqa: E402
from core.stores.sql import SqlAlchemyStore  # noqa: E402
from db.database import Base, InventoryItem, User, get_async_session  # noqa: E402

ROLES = ("admin", "editor", "submitter", "viewer")


# =========================================
# Per-test SQLite database (file-backed so concurrent sessions see each other)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
def sql_store(session_maker):
    return SqlAlchemyStore(session_maker, max_attempts=5)


@pytest.fixture
def ledger(sql_store):
    return ShipmentLedger(sql_store)


@pytest.fixture
def seed_items(session_maker):
    """async seed_items({"A1": 10, ...}) -> inserts active items with those quantities."""

    async def _seed(quantities: dict[str, int], **fields):
        async with session_maker() as s:
            for sku, qty in quantities.items():
                s.add(
                    InventoryItem(
                        sku=sku,
                        description=fields.get("description", f"Item {sku}"),
                        quantity_on_hand=qty,
                        category=fields.get("category"),
                        location=fields.get("location"),
                    )
                )
            await s.commit()

    return _seed


@pytest.fixture
def get_quantity(session_maker):
    async def _get(sku: str) -> int:
        async with session_maker() as s:
            res = await s.execute(select(InventoryItem.quantity_on_hand).where(InventoryItem.sku == sku))
            return int(res.scalar_one())

    return _get


@pytest_asyncio.fixture
async def users(session_maker) -> dict[str, User]:
    """One approved account per role, plus a 'pending' submitter."""
    out: dict[str, User] = {}
    async with session_maker() as s:
        for role in ROLES:
            out[role] = User(
                id=uuid.uuid4(),
                email=f"{role}@example.com",
                hashed_password="not-a-real-hash",
                is_active=True,
                is_superuser=role == "admin",
                is_verified=True,
                role=role,
                status="approved",
            )
        out["pending"] = User(
            id=uuid.uuid4(),
            email="pending@example.com",
            hashed_password="not-a-real-hash",
            is_active=True,
            is_superuser=False,
            is_verified=False,
            role="submitter",
            status="pending",
        )
        s.add_all(out.values())
        await s.commit()
    return out


class FakeOcrReader:
    text = ""

    def read_text(self, data: bytes) -> str:
        return self.text


@pytest.fixture
def fake_ocr():
    return FakeOcrReader()


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest.fixture
def current_user(users) -> dict:
    return {"user": users["admin"]}


@pytest.fixture
def act_as(users, current_user):
    """Switch the authenticated account for subsequent requests: act_as("submitter")."""

    def _act_as(name: str) -> User:
        current_user["user"] = users[name]
        return users[name]

    return _act_as


@pytest_asyncio.fixture(scope="function")
async def client(session_maker, ledger, current_user, fake_ocr) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _session_override():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session_override
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_ocr_reader] = lambda: fake_ocr
    app.dependency_overrides[current_active_user] = lambda: current_user["user"]

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.dependency_overrides.clear()
